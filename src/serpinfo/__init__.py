"""
serpinfo - declarative search result filtering.

Rule documents describe where the results of a search page are and how to
read them; the filter marks every result as blocked, highlighted or neither
and keeps the markers current as the page changes.
"""

__version__ = "0.1.0"
