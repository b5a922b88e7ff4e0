"""
Filesystem components of the explorer engine.

This module contains the directory lister, the listing cache, the background
index builder, the search engine and the file opener.
"""
