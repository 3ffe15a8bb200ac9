"""Extract structured transaction fields from a bank/payment message body.

The parser is heuristic and table driven. Each field has an ordered list of
patterns; the first one producing an acceptable value wins:

- direction: expense keyword table first, then income; neither means the body
  is unparsable;
- amount: thirteen regexes from most to least specific, with plausibility
  limits on the value;
- counterparty: direction-specific capture patterns, each capture cleaned and
  validated, then a chain of fallbacks ending in ``"Unknown"``;
- payment channel: fixed-priority keyword table, ``"SMS"`` when nothing hits;
- account hint: masked account/card tail digits.

Nothing here touches the database; ``parse`` is a pure function of
``(body, sender)``.
"""

from __future__ import annotations

import re
from decimal import Decimal

from .logging_setup import get_logger
from .models import Direction, ParsedMessage, to_money
from .rules import Rule, all_of, contains_any, first_match, keyword_table

logger = get_logger("sms_ledger.parser")

UNKNOWN = "Unknown"
MAX_AMOUNT = Decimal("1000000")
MAX_COUNTERPARTY_LENGTH = 50

# ---------------------------------------------------------------------------
# Direction
# ---------------------------------------------------------------------------

EXPENSE_TERMS: tuple[str, ...] = (
    "debit alert", "debit:", "debited", "spent", "paid", "payment to",
    "withdrawal", "purchase", "txn at", "transaction at", "bought",
    "transferred to", "sent to", "sent rs", "sent inr", "sent ₹",
    "dr ", "dr.", "withdrawal from", "paid to", "outgoing", "deducted",
    "charged", "bill payment", "emi", "autopay", "money sent",
    "amount sent", "transferred", "send money", "debited for",
    "debited for payee", "debit:rs",
)  # fmt: skip

INCOME_TERMS: tuple[str, ...] = (
    "credit alert", "credit:", "credited", "received", "deposited",
    "payment from", "refund", "cashback", "interest", "salary",
    "cr ", "cr.", "received from", "transferred from", "deposit",
    "incoming", "added", "bonus", "reward", "dividend", "commission",
    "money received", "amount received", "credited to", "credit to",
)  # fmt: skip

DIRECTION_RULES: tuple[Rule[Direction], ...] = (
    Rule(contains_any(*EXPENSE_TERMS), Direction.EXPENSE, name="expense-terms"),
    Rule(contains_any(*INCOME_TERMS), Direction.INCOME, name="income-terms"),
)

# ---------------------------------------------------------------------------
# Amount
# ---------------------------------------------------------------------------

_NUM = r"([\d,]+(?:\.\d{1,2})?)"

AMOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"for\s+rs\.?\s*{_NUM}\s", re.IGNORECASE),
    re.compile(rf"debit:rs\.?\s*{_NUM}", re.IGNORECASE),
    re.compile(rf"rs\.?\s*{_NUM}\s+credited", re.IGNORECASE),
    re.compile(rf"(?:rs\.?\s*|inr\s*|₹\s*){_NUM}", re.IGNORECASE),
    re.compile(rf"{_NUM}\s*(?:rs\.?|inr|₹)", re.IGNORECASE),
    re.compile(rf"(?:debit|credit|dr|cr):\s*(?:rs\.?\s*)?{_NUM}", re.IGNORECASE),
    re.compile(rf"credit alert!\s*rs\.?\s*{_NUM}", re.IGNORECASE),
    re.compile(rf"(?:amount|amt|sum)\s*(?:of)?\s*(?:rs\.?\s*)?{_NUM}", re.IGNORECASE),
    re.compile(rf"(?:upi|imps|neft)\s*(?:.*?)\s*{_NUM}", re.IGNORECASE),
    re.compile(rf"bal:\s*(?:rs\.?\s*)?{_NUM}", re.IGNORECASE),
    re.compile(
        rf"{_NUM}\s*(?:debited|credited|sent|received|spent|paid|purchase|withdraw|transfer)",
        re.IGNORECASE,
    ),
    re.compile(r"\b([\d,]+\.\d{2})\b"),
    re.compile(r"\b([\d,]+)\b"),
)

# The last two patterns match any bare number, so long values there are more
# likely reference or phone numbers than amounts.
_BARE_NUMBER_PATTERNS = 2
_BARE_NUMBER_LIMIT = Decimal("10000")
_BARE_NUMBER_MAX_TEXT = 8

# ---------------------------------------------------------------------------
# Counterparty
# ---------------------------------------------------------------------------

_NAME = r"([A-Z][A-Z\s&.'-]+?)"

EXPENSE_COUNTERPARTY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"debited for payee\s+{_NAME}(?:\s+for\s+rs|\s+on|\s+ref|$)", re.IGNORECASE),
    re.compile(rf"UPI/[^/]*?/[^/]*?/{_NAME}(?:\s+|$)"),
    re.compile(
        rf"(?:to|paid to|sent to|payment to|transferred to)\s+{_NAME}"
        r"(?:\s+(?:on|upi|ref|txn|ac|a/c|\d{2}/\d{2}/\d{2,4}|for\s+rs|$))"
    ),
    re.compile(rf"UPI/[^/]+/{_NAME}(?:/|\s|$)"),
    re.compile(
        rf"(?:txn at|transaction at|spent at|purchase at|bought at)\s+{_NAME}"
        r"(?:\s+(?:on|ref|txn|\d{2}/\d{2}|$))"
    ),
    re.compile(
        rf"(?:debited for|charged for|spent on|paid for)\s+{_NAME}"
        r"(?:\s+(?:on|ref|txn|at|for\s+rs|$))",
        re.IGNORECASE,
    ),
    re.compile(r"(?:to VPA|sent to)\s+([A-Za-z][A-Za-z0-9._-]*?)@[A-Za-z0-9.-]+", re.IGNORECASE),
    re.compile(rf"Info\s*:\s*{_NAME}(?:\s|$)", re.IGNORECASE),
)

INCOME_COUNTERPARTY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        rf"(?:from|received from|credited from|payment from|transferred from)\s+{_NAME}"
        r"(?:\s+(?:on|upi|ref|txn|ac|a/c|to|$))"
    ),
    re.compile(r"(?:from VPA|received from)\s+([A-Za-z][A-Za-z0-9._-]*?)@[A-Za-z0-9.-]+", re.IGNORECASE),
    re.compile(
        rf"(?:credited by|credited for|received for)\s+{_NAME}(?:\s+(?:on|ref|txn|$))",
        re.IGNORECASE,
    ),
    re.compile(
        rf"(?:salary from|wage from|payment from)\s+{_NAME}(?:\s+(?:on|ref|txn|$))",
        re.IGNORECASE,
    ),
)

_ABBREVIATED_BEFORE_BALANCE = re.compile(r"([A-Z]{3,}(?:\s+[A-Z]{3,})*)\s+Bal:")
_TO_LINE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:^|\n)\s*To\s+([A-Z][A-Z\s&.'-]+?)(?:\s*$|\n)", re.MULTILINE),
    re.compile(r"To\s+([A-Z][A-Z\s&.'-]{3,50}?)(?:\s+On|\s+Ref|\s*$)"),
)
_VPA = re.compile(r"([A-Za-z][A-Za-z0-9._-]{2,})@[A-Za-z0-9.-]+")

# Applied in order; each removes a trailing boilerplate fragment.
_CLEANUP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\s+via\s+.*", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+(?:on\s+)?\d{1,2}[-/]\d{1,2}[-/](?:\d{2}|\d{4}).*", re.IGNORECASE | re.DOTALL),
    re.compile(
        r"\s+(?:ref|reference|txn|transaction)\s*(?:no\.?|id|num)?\s*:?\s*\d+.*",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"\s+(?:avbl|avl|available)\s+bal.*", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+bal\s*:.*", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+a/c\s*(?:no\.?)?\s*[x*]*\d+", re.IGNORECASE),
    re.compile(r"\s+account\s*(?:no\.?)?\s*[x*]*\d+", re.IGNORECASE),
    re.compile(r"\s+card\s*(?:no\.?)?\s*[x*]*\d+", re.IGNORECASE),
    re.compile(r"\s+\d{10}"),
    re.compile(r"\s+\+\d{1,3}\s*\d{10}"),
    re.compile(r"\s*\(UPI\s+\d+\).*", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+not you\?.*", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+call\s+\d+.*", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s+sms\s+block.*", re.IGNORECASE | re.DOTALL),
)

_SINGLE_HANDLE = re.compile(r"^[a-z]+[a-z0-9]*\d*$", re.IGNORECASE)
_CAMEL_NAME = re.compile(r"([a-z]+)([A-Z][a-z]+)")
CORPORATE_SUFFIXES = frozenset({"LTD", "PVT", "CO", "INC", "LLC", "CORP", "PTE", "ACCT"})

# Short captures containing these are usually message boilerplate, not names.
COUNTERPARTY_JARGON: tuple[str, ...] = (
    "ref", "reference", "txn", "transaction", "upi", "imps", "neft", "rtgs",
    "debit", "credit", "balance", "bal", "avbl", "avl", "account", "a/c",
    "card", "ending", "xxxx", "****",
)  # fmt: skip
_JARGON_MAX_LENGTH = 10

BANK_NAME_TERMS: tuple[str, ...] = (
    "bank", "hdfc", "icici", "axis", "sbi", "kotak", "yes bank", "rbl",
    "pnb", "union bank", "canara", "baroda", "idbi", "indusind", "federal",
    "state bank", "punjab national", "bank of baroda", "hdfc bank",
    "icici bank", "axis bank", "kotak bank",
)  # fmt: skip
_BANK_NAME_MAX_LENGTH = 25

_SENDER_PREFIX = re.compile(r"^(?:VM-|BP-|AX-|AD-|TM-|JK-|SB-|HD-)", re.IGNORECASE)

# Matched against the lower-cased, prefix-stripped sender.
SENDER_DISPLAY_RULES: tuple[Rule[str], ...] = keyword_table(
    [
        ("HDFC Bank", ["HDFCBK"]),
        ("ICICI Bank", ["ICICIBK"]),
        ("Axis Bank", ["AXISBK"]),
        ("SBI Bank", ["SBIMB"]),
        ("Kotak Bank", ["KOTAKBK"]),
        ("Yes Bank", ["YESBANK"]),
        ("RBL Bank", ["RBLBANK"]),
        ("PNB Bank", ["PNBSMS"]),
        ("Union Bank", ["UNIONBK"]),
        ("Canara Bank", ["CANARABK"]),
        ("Bank of Baroda", ["BOBSMS"]),
        ("IDBI Bank", ["IDBIBANK"]),
        ("IndusInd Bank", ["INDUSBK"]),
        ("Federal Bank", ["FEDERAL"]),
    ]
)

_GENERIC_SENDER_TERMS = ("bank", "alerts", "update", "notify", "verify", "otp", "promo", "info")
_HEADER_SENDER = re.compile(r"^[a-z0-9]{2}-[a-z0-9]{5,10}$")

# ---------------------------------------------------------------------------
# Payment channel
# ---------------------------------------------------------------------------

PAYMENT_CHANNEL_RULES: tuple[Rule[str], ...] = (
    Rule(contains_any("upi"), "UPI"),
    Rule(contains_any("imps"), "IMPS"),
    Rule(contains_any("neft"), "NEFT"),
    Rule(contains_any("rtgs"), "RTGS"),
    Rule(all_of(contains_any("card"), contains_any("credit")), "Credit Card"),
    Rule(all_of(contains_any("card"), contains_any("debit")), "Debit Card"),
    Rule(contains_any("card"), "Card"),
    Rule(contains_any("netbanking", "net banking"), "NetBanking"),
    Rule(contains_any("wallet"), "Wallet"),
    Rule(contains_any("atm"), "ATM"),
    Rule(contains_any("pos"), "POS"),
    Rule(contains_any("cheque", "check"), "Cheque"),
    Rule(contains_any("cash"), "Cash"),
    Rule(contains_any("auto pay", "autopay"), "Auto Pay"),
    Rule(contains_any("emi"), "EMI"),
    Rule(contains_any("a/c", "account"), "Bank Transfer"),
)
DEFAULT_PAYMENT_CHANNEL = "SMS"

# ---------------------------------------------------------------------------
# Account hint
# ---------------------------------------------------------------------------

_ENDING = r"(?:ending\s*(?:with)?|ending)?"

ACCOUNT_HINT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"a/c\s*(?:no\.?|number)?\s*{_ENDING}\s*x*(\d{{3,6}})"),
    re.compile(rf"account\s*(?:no\.?|number)?\s*{_ENDING}\s*x*(\d{{3,6}})"),
    re.compile(rf"card\s*(?:no\.?|number)?\s*{_ENDING}\s*x*(\d{{4}})"),
    re.compile(r"a/c\s*x+(\d{3,6})"),
    re.compile(r"ac\s*(\d{3,6})"),
    re.compile(r"account\s*(\d{3,6})"),
    re.compile(r"card\s*ending\s*(\d{4})"),
    re.compile(r"card\s*x+(\d{4})"),
    re.compile(r"(?:hdfc|icici|axis|sbi|kotak)\s*a/c\s*x*(\d{3,6})"),
)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def detect_direction(body: str) -> Direction | None:
    return first_match(DIRECTION_RULES, body.lower(), None)


def extract_amount(body: str) -> Decimal | None:
    """Return the first plausible amount found in ``body``.

    A candidate is accepted when it is positive and at most ``MAX_AMOUNT``.
    Candidates from the bare-number patterns are additionally rejected when
    above 10,000 with a long textual form (8+ characters as a float, e.g.
    ``"123456.0"``), which filters out reference and phone numbers.
    """

    last = len(AMOUNT_PATTERNS)
    for index, rx in enumerate(AMOUNT_PATTERNS):
        m = rx.search(body)
        if m is None:
            continue
        raw = m.group(1).replace(",", "")
        amount = to_money(raw) if raw else None
        if amount is None or amount <= 0:
            continue
        if amount > MAX_AMOUNT:
            continue
        if (
            index >= last - _BARE_NUMBER_PATTERNS
            and amount > _BARE_NUMBER_LIMIT
            and len(str(float(raw))) >= _BARE_NUMBER_MAX_TEXT
        ):
            continue
        logger.debug("amount %s matched pattern %d", amount, index + 1)
        return amount
    return None


def format_vpa_username(username: str) -> str:
    """Turn a payment-handle username into a display name.

    ``"john.doe42"`` -> ``"John Doe"``; ``"johnDoe"`` -> ``"John Doe"``.
    """

    cleaned = re.sub(r"\d+$", "", username).replace(".", " ").replace("_", " ")
    m = _CAMEL_NAME.search(cleaned)
    if m is not None:
        return f"{m.group(1)[:1].upper()}{m.group(1)[1:]} {m.group(2)}"
    return " ".join(w[:1].upper() + w[1:].lower() for w in cleaned.split() if w)


def _title_word(word: str) -> str:
    if len(word) <= 1:
        return word.upper()
    if word.upper() in CORPORATE_SUFFIXES:
        return word.upper()
    return word[:1].upper() + word[1:].lower()


def clean_counterparty(raw: str) -> str:
    """Strip message boilerplate from a captured name and normalize its case."""

    cleaned = raw.strip()
    cleaned = cleaned.removesuffix(".").removesuffix(",").strip()
    for rx in _CLEANUP_PATTERNS:
        cleaned = rx.sub("", cleaned).strip()

    if _SINGLE_HANDLE.match(cleaned):
        cleaned = format_vpa_username(cleaned)

    cleaned = re.sub(r"\s{2,}", " ", cleaned).strip()
    cleaned = re.sub(r"[*]{2,}", " ", cleaned).strip()

    if len(cleaned) > 1 and (cleaned == cleaned.upper() or cleaned == cleaned.lower()):
        cleaned = " ".join(_title_word(w) for w in cleaned.split(" "))

    if len(cleaned) > MAX_COUNTERPARTY_LENGTH:
        cleaned = cleaned[:MAX_COUNTERPARTY_LENGTH].strip()

    return cleaned or UNKNOWN


def is_valid_counterparty(name: str) -> bool:
    if not name.strip() or name == UNKNOWN:
        return False
    if name.isdigit() or len(name) < 2:
        return False
    if not re.search(r"[A-Za-z]", name):
        return False
    lower = name.lower()
    if len(name) < _JARGON_MAX_LENGTH and any(j in lower for j in COUNTERPARTY_JARGON):
        return False
    return True


def is_bank_name(name: str) -> bool:
    lower = name.lower()
    return len(lower) < _BANK_NAME_MAX_LENGTH and any(t in lower for t in BANK_NAME_TERMS)


def is_generic_sender(sender: str) -> bool:
    """True for alert/OTP style senders and operator headers like ``vm-hdfcbk``."""

    lower = sender.lower()
    return any(t in lower for t in _GENERIC_SENDER_TERMS) or bool(_HEADER_SENDER.match(lower))


def clean_sender_name(sender: str) -> str:
    stripped = _SENDER_PREFIX.sub("", sender.strip())
    return first_match(SENDER_DISPLAY_RULES, stripped.lower(), stripped)


def detect_payment_channel(body: str) -> str:
    return first_match(PAYMENT_CHANNEL_RULES, body.lower(), DEFAULT_PAYMENT_CHANNEL)


def extract_account_hint(body: str) -> str | None:
    lower = body.lower()
    for rx in ACCOUNT_HINT_PATTERNS:
        m = rx.search(lower)
        if m is not None and m.group(1):
            return m.group(1)
    return None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TransactionParser:
    """Turn a message body into a ``ParsedMessage`` or ``None`` when unparsable."""

    def parse(self, body: str, sender: str) -> ParsedMessage | None:
        direction = detect_direction(body)
        if direction is None:
            logger.debug("no direction keywords in message from %s", sender)
            return None

        amount = extract_amount(body)
        if amount is None:
            logger.debug("no plausible amount in message from %s", sender)
            return None

        return ParsedMessage(
            amount=amount,
            direction=direction,
            counterparty=self.extract_counterparty(body, sender, direction),
            payment_channel=detect_payment_channel(body),
            account_hint=extract_account_hint(body),
        )

    def extract_counterparty(self, body: str, sender: str, direction: Direction) -> str:
        patterns = (
            EXPENSE_COUNTERPARTY_PATTERNS
            if direction is Direction.EXPENSE
            else INCOME_COUNTERPARTY_PATTERNS
        )
        for rx in patterns:
            m = rx.search(body)
            if m is None or not m.group(1).strip():
                continue
            cleaned = clean_counterparty(m.group(1))
            if direction is Direction.EXPENSE and is_bank_name(cleaned):
                continue
            if is_valid_counterparty(cleaned):
                return cleaned

        if direction is Direction.EXPENSE:
            m = _ABBREVIATED_BEFORE_BALANCE.search(body)
            if m is not None:
                cleaned = clean_counterparty(m.group(1))
                if is_valid_counterparty(cleaned):
                    return cleaned

            for rx in _TO_LINE_PATTERNS:
                m = rx.search(body)
                if m is None or not m.group(1).strip():
                    continue
                cleaned = clean_counterparty(m.group(1))
                if is_valid_counterparty(cleaned) and not is_bank_name(cleaned):
                    return cleaned

        if is_generic_sender(sender):
            return UNKNOWN

        m = _VPA.search(body)
        if m is not None:
            formatted = format_vpa_username(m.group(1))
            if is_valid_counterparty(formatted):
                return formatted

        display = clean_sender_name(sender)
        if is_valid_counterparty(display) and not is_bank_name(display):
            return display
        return UNKNOWN


__all__ = [
    "ACCOUNT_HINT_PATTERNS",
    "AMOUNT_PATTERNS",
    "DIRECTION_RULES",
    "PAYMENT_CHANNEL_RULES",
    "TransactionParser",
    "UNKNOWN",
    "clean_counterparty",
    "clean_sender_name",
    "detect_direction",
    "detect_payment_channel",
    "extract_account_hint",
    "extract_amount",
    "format_vpa_username",
    "is_bank_name",
    "is_generic_sender",
    "is_valid_counterparty",
]
