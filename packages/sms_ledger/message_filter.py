"""Promotional/trust gate applied before any parsing happens.

The filter is deliberately permissive about trust (a sender on the curated
list, a payment provider, or a body that looks like a genuine bank alert) and
strict about promotions. The stricter precision check lives in
``sms_ledger.validator`` and runs after parsing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .logging_setup import get_logger
from .rules import Rule, all_of, contains_all, contains_any, count_matches, first_match, matches

logger = get_logger("sms_ledger.message_filter")

TRUSTED_BANK_SENDERS: tuple[str, ...] = (
    "vm-hdfcbk", "bp-hdfcbk", "hdfcbk", "hdfc bank",
    "vm-icicib", "bp-icicib", "icicibk", "icici bank",
    "vm-axisbk", "bp-axisbk", "axisbk", "axis bank",
    "vm-kotakbk", "bp-kotakbk", "kotakbk", "kotak bank",
    "vm-sbimb", "bp-sbimb", "sbimb", "sbi bank", "sbiinb",
    "vm-pnbsms", "bp-pnbsms", "pnbsms", "pnb bank",
    "vm-unionbk", "bp-unionbk", "unionbk", "union bank",
    "vm-canarabk", "bp-canarabk", "canarabk", "canara bank",
    "vm-bobsms", "bp-bobsms", "bobsms", "bank of baroda",
    "vm-idbibank", "bp-idbibank", "idbibank", "idbi bank",
    "vm-yesbank", "bp-yesbank", "yesbank", "yes bank",
    "vm-rblbank", "bp-rblbank", "rblbank", "rbl bank",
    "vm-indusbk", "bp-indusbk", "indusbk", "indusind bank",
    "vm-federal", "bp-federal", "federal", "federal bank",
    "vm-sibsms-s", "va-sibsms-s", "vd-sibsms-s", "south indian bank", "sib",
    "iob", "indian overseas bank", "cp-iobchn-s", "cp-iobchn",
    "majeed bhaiya",
)  # fmt: skip

TRUSTED_PAYMENT_SENDERS: tuple[str, ...] = (
    "paytm", "phonepe", "gpay", "googlepay", "bhim", "amazonpay",
    "mobikwik", "freecharge", "payzapp", "airtel money",
)  # fmt: skip

SPAM_SENDER_TERMS: tuple[str, ...] = (
    "promo", "offer", "deals", "sale", "marketing", "ads", "notify", "alert",
)  # fmt: skip

PROMOTIONAL_KEYWORDS: tuple[str, ...] = (
    "offer", "discount", "cashback offer", "reward points", "scheme",
    "free", "special offer", "limited time", "hurry", "expires",
    "activate now", "click here", "visit", "download", "install",
    "upgrade", "new feature", "congratulations", "winner", "prize",
    "lottery", "lucky", "bonus offer", "gift", "voucher available",
    "promocode", "coupon", "deal", "sale", "% off", "₹ off",
    "minimum transaction", "cashback upto", "get upto", "earn upto",
    "validity", "t&c apply", "terms and conditions", "promo",
    "advertisement", "marketing", "campaign", "festive offer",
    "holiday offer", "season sale", "mega sale", "flash sale",
    "exclusive offer", "member offer", "invitation", "join now",
    "register now", "sign up", "subscription", "plan", "package",
    "service update", "maintenance", "scheduled", "temporarily",
    "unavailable", "disruption", "notice", "announcement",
    "reminder", "due date", "expiry", "renewal", "auto renewal",
    "setup autopay", "enable autopay", "upi autopay", "mandate",
    "standing instruction", "si", "ecs", "nach", "auto debit",
    "bill reminder", "payment reminder", "overdue", "late fee",
    "penalty", "charges applicable",
)  # fmt: skip

# Two or more keyword hits mark a body as promotional.
PROMOTIONAL_KEYWORD_THRESHOLD = 2

_PROMO_KEYWORD_RULES: tuple[Rule[str], ...] = tuple(
    Rule(contains_any(k), k, name=k) for k in PROMOTIONAL_KEYWORDS
)

_PROMO_PATTERN_RULES: tuple[Rule[str], ...] = tuple(
    Rule(matches(p, re.IGNORECASE), p, name=p)
    for p in (
        r"https?://[^\s]+",
        r"www\.[^\s]+",
        r"[a-z0-9]+\.in/[^\s]+",
        r"click here",
        r"tap here",
        r"visit [^\s]+",
        r"download [^\s]+",
        r"get \d+% (off|cashback)",
        r"upto .*% off",
        r"minimum .*₹\d+",
        r"valid (till|until)",
        r"offer expires",
        r"set up .* in \d+ click",
        r"activate now",
        r"ac no \d+",
        r"don't let .* stop",
        r"enjoy uninterrupted",
        r"prepaid pack at just",
    )
) + (
    Rule(contains_all("prepaid pack", "just ₹"), "prepaid pack at just ₹", name="prepaid-pack"),
)

_BANK_CONTENT_PHRASES: tuple[str, ...] = (
    "from hdfc bank", "from icici bank", "from axis bank", "from sbi bank",
    "from kotak bank", "from yes bank", "from rbl bank", "from pnb bank",
    "hdfc bank a/c", "icici bank a/c", "axis bank a/c", "sbi a/c",
    "kotak a/c", "yes bank a/c", "rbl bank a/c", "pnb a/c",
    "state bank of india", "punjab national bank", "canara bank",
    "bank of baroda", "union bank", "federal bank", "indusind bank",
)  # fmt: skip

_BANK_CONTENT_INDICATORS: tuple[str, ...] = (
    "sent rs", "sent inr", "sent ₹", "debited", "credited",
    "payment to", "payment from", "transferred to", "transferred from",
    "upi", "imps", "neft", "rtgs", "transaction", "txn",
)  # fmt: skip

# A body is genuine bank content only when every component is present.
_BANK_CONTENT = all_of(
    contains_any(*_BANK_CONTENT_PHRASES),
    contains_any(*_BANK_CONTENT_INDICATORS),
    matches(r"ref\s*\d+"),
    matches(r"a/c\s*[*x]*\d{3,6}"),
    matches(r"rs\.?\s*\d+(\.\d{2})?"),
)


def _sender_is_trusted_bank(lower_sender: str) -> bool:
    return any(
        t in lower_sender or lower_sender.startswith(t) for t in TRUSTED_BANK_SENDERS
    )


def _sender_is_payment_provider(lower_sender: str) -> bool:
    return any(t in lower_sender for t in TRUSTED_PAYMENT_SENDERS)


@dataclass(frozen=True, slots=True)
class FilterVerdict:
    promotional: bool
    trusted: bool
    reason: str

    @property
    def accepted(self) -> bool:
        return self.trusted and not self.promotional


class MessageFilter:
    """Classify a raw message as promotional and/or from a trusted source."""

    def promotional_reason(self, sender: str, body: str) -> str | None:
        """Return why ``(sender, body)`` looks promotional, or ``None``."""

        lower_sender = sender.lower()
        lower_body = body.lower()

        for term in SPAM_SENDER_TERMS:
            if term in lower_sender:
                return f"spam sender pattern {term!r}"

        hits = count_matches(_PROMO_KEYWORD_RULES, lower_body)
        if hits >= PROMOTIONAL_KEYWORD_THRESHOLD:
            return f"{hits} promotional keywords"

        pattern = first_match(_PROMO_PATTERN_RULES, lower_body, None)
        if pattern is not None:
            return f"promotional pattern {pattern!r}"
        return None

    def is_promotional(self, sender: str, body: str) -> bool:
        return self.promotional_reason(sender, body) is not None

    def has_bank_content(self, body: str) -> bool:
        return _BANK_CONTENT(body.lower())

    def is_trusted(self, sender: str, body: str) -> bool:
        lower_sender = sender.lower()
        return (
            _sender_is_trusted_bank(lower_sender)
            or _sender_is_payment_provider(lower_sender)
            or self.has_bank_content(body)
        )

    def check(self, sender: str, body: str) -> FilterVerdict:
        promo = self.promotional_reason(sender, body)
        if promo is not None:
            logger.debug("promotional message from %s: %s", sender, promo)
            return FilterVerdict(promotional=True, trusted=self.is_trusted(sender, body), reason=promo)
        if not self.is_trusted(sender, body):
            logger.debug("untrusted sender %s", sender)
            return FilterVerdict(promotional=False, trusted=False, reason="untrusted sender")
        return FilterVerdict(promotional=False, trusted=True, reason="accepted")


__all__ = [
    "FilterVerdict",
    "MessageFilter",
    "PROMOTIONAL_KEYWORDS",
    "TRUSTED_BANK_SENDERS",
    "TRUSTED_PAYMENT_SENDERS",
]
