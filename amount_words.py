import math
from decimal import Decimal
from typing import Callable, Optional

from loguru import logger

WordsRenderer = Callable[[int], str]


def load_words_renderer(lang: str = "en_IN") -> WordsRenderer:
    """Resolve the cardinal-number renderer on first use."""
    from num2words import num2words

    def render(n: int) -> str:
        return num2words(n, lang=lang)

    return render


def _capitalize(words: str) -> str:
    return words[:1].upper() + words[1:]


def _is_amount(amount) -> bool:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        return False
    if isinstance(amount, Decimal):
        return not amount.is_nan()
    return not (isinstance(amount, float) and math.isnan(amount))


async def amount_to_words(amount, to_words: Optional[WordsRenderer] = None) -> str:
    """
    Render a rupee amount for the printed invoice, e.g.
    ``"Rupees One hundred Only"`` or ``"Rupees Five and Fifty Paise Only"``.

    Never raises: bad input gives ``"Invalid amount"`` and renderer failures
    fall back to the numeric amount.
    """
    if not _is_amount(amount):
        return "Invalid amount"

    try:
        render = to_words or load_words_renderer()
        rounded = round(float(amount), 2)
        whole = math.floor(rounded)
        paise = round((rounded - whole) * 100)

        result = _capitalize(render(whole))
        if paise > 0:
            result += f" and {_capitalize(render(paise))} Paise"
        return f"Rupees {result} Only"
    except Exception as e:
        logger.error("Error converting amount to words: {}", e)
        return f"Rupees {float(amount):.2f} (Error in conversion)"
