"""Shared enumerations for the ledger and booking engine."""

from enum import Enum


class CreditTransactionType(str, Enum):
    """Kinds of ledger entries."""

    GIFT = "gift"
    PURCHASE = "purchase"
    SPEND = "spend"
    REFUND = "refund"


class CancelledBy(str, Enum):
    """Who initiated a cancellation."""

    CONSUMER = "consumer"
    BUSINESS = "business"


class DiscountSource(str, Enum):
    """Origin of an applied discount, in precedence order."""

    INSTANCE_RULE = "instance_rule"
    TEMPLATE_RULE = "template_rule"


class ReminderType(str, Enum):
    """Class reminder variants and their lead times."""

    CLASS_REMINDER_1H = "class_reminder_1h"
    CLASS_REMINDER_3H = "class_reminder_3h"
    CLASS_REMINDER_30M = "class_reminder_30m"
