"""Treks app package.

Trek catalogue entries and their scheduled batches. A batch carries its
capacity ceiling, a cached participant counter and the version token used
when that counter is rewritten.
"""
