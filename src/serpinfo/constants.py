"""
Marker attributes written into the document by the filter.
"""

RESULT_ATTRIBUTE = "data-ub-result"
BLOCK_ATTRIBUTE = "data-ub-block"
HIGHLIGHT_ATTRIBUTE = "data-ub-highlight"
BUTTON_ATTRIBUTE = "data-ub-button"
BUTTON_PARENT_ATTRIBUTE = "data-ub-button-parent"

# Default size of the action button icon (px)
ICON_SIZE = 24
