"""Display helpers for amounts."""

_ONES = ["", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine"]
_TEENS = [
    "ten", "eleven", "twelve", "thirteen", "fourteen",
    "fifteen", "sixteen", "seventeen", "eighteen", "nineteen",
]
_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]
_THOUSANDS = ["", "thousand", "million", "billion"]


def format_amount(value: float, symbol: str = "$", precision: int = 2) -> str:
    """Format an amount with a currency symbol and fixed decimals."""
    return f"{symbol}{value:,.{precision}f}"


def _hundreds_to_words(n: int) -> str:
    words = []
    if n >= 100:
        words.append(f"{_ONES[n // 100]} hundred")
        n %= 100
    if n >= 20:
        words.append(_TENS[n // 10])
        n %= 10
    elif n >= 10:
        words.append(_TEENS[n - 10])
        return " ".join(words)
    if n > 0:
        words.append(_ONES[n])
    return " ".join(words)


def amount_in_words(value: float) -> str:
    """
    Spell out the integer part of an amount, e.g. ``"one hundred five only"``.

    Fractions are dropped. Amounts of a trillion or more are out of range.
    """
    num = int(abs(value))
    if num == 0:
        return "zero"
    if num >= 1000 ** len(_THOUSANDS):
        raise ValueError(f"Amount too large to spell out: {value}")

    chunks = []
    index = 0
    while num > 0:
        chunk = num % 1000
        if chunk:
            chunks.insert(0, " ".join(p for p in (_hundreds_to_words(chunk), _THOUSANDS[index]) if p))
        num //= 1000
        index += 1

    return " ".join(chunks) + " only"
