"""
Bill Splitter - split a shared receipt into fair per-person amounts.
"""
