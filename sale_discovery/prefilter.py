"""
Cheap keyword pre-filter.

Passing only makes a posting eligible for classification. It says nothing
about confidence.
"""

# Hebrew + English sale vocabulary, currency and percentage symbols
SALE_KEYWORDS = [
    "מבצע", "הנחה", "סייל", "sale", "discount", "%", "off",
    "חינם", "free", "1+1", "קנה", "buy", "save", "חסכו",
    "₪", "שקל", "שקלים", 'ש"כ', "מחיר", "price", "deal", "דיל",
    "קופון", "coupon", "חיסכון", "savings",
]

_LOWER_KEYWORDS = [keyword.lower() for keyword in SALE_KEYWORDS]


def looks_like_sale(text: str) -> bool:
    """Return True if the text contains any sale keyword."""
    if not text:
        return False
    lower_text = text.lower()
    return any(keyword in lower_text for keyword in _LOWER_KEYWORDS)
