"""
Identity package.

Identity providers report who is calling; the service only needs the
caller's directly assigned role names.
"""
