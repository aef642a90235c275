"""Document categories and the electronic-signing exclusion policy."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from app.core.exceptions import PolicyExcludedError
from app.core.logging import get_logger

logger = get_logger(__name__)

WarningLevel = Literal["info", "warning", "danger"]

DEFAULT_CATEGORY = "general_contract"


@dataclass(frozen=True, slots=True)
class DocumentCategory:
    id: str
    label: str
    description: str
    warning: str | None = None
    warning_level: WarningLevel = "info"

    @property
    def is_excluded(self) -> bool:
        """``danger`` categories cannot be signed electronically at all."""
        return self.warning_level == "danger"


# Order is the order shown to signers.
DOCUMENT_CATEGORIES: tuple[DocumentCategory, ...] = (
    DocumentCategory(
        id="general_contract",
        label="General Contract",
        description=(
            "Service agreements, NDAs, employment contracts (non-executive), "
            "vendor agreements, etc."
        ),
        warning="Legal Basis: Evidence Act 2011 (S.84-93); Cybercrimes Act 2015 (S.17)",
    ),
    DocumentCategory(
        id="loan_agreement",
        label="Loan Agreement",
        description="Consumer or SME loan contracts, promissory notes",
        warning="Legal Basis: Evidence Act 2011 (S.84-93)",
    ),
    DocumentCategory(
        id="lease_short",
        label="Short-Term Lease (<3 years)",
        description="Residential or commercial rental agreements under 3 years",
        warning="Legal Basis: Cybercrimes Act 2015 (S.17)",
    ),
    DocumentCategory(
        id="invoice",
        label="Invoice / Payment Acknowledgment",
        description="Billing documents, payment confirmations",
        warning="Legal Basis: Commercial practice; Evidence Act",
    ),
    DocumentCategory(
        id="gift_deed",
        label="Gift Deed",
        description="Voluntary transfer of property without consideration",
        warning=(
            "Gift deeds may require physical execution, witness attestation, and "
            "registration at the Lands Registry to be legally enforceable."
        ),
        warning_level="warning",
    ),
    DocumentCategory(
        id="power_of_attorney_land",
        label="Power of Attorney (Land-Related)",
        description="POA authorizing land transactions, mortgages, or property sales",
        warning=(
            "Powers of Attorney affecting land must typically be registered at the "
            "State Lands Registry. Electronic signing alone may not suffice."
        ),
        warning_level="warning",
    ),
    DocumentCategory(
        id="affidavit",
        label="Affidavit / Statutory Declaration",
        description="Sworn statements for court or official use",
        warning=(
            "Affidavits must be sworn before a Notary Public or Commissioner for "
            "Oaths in person. Electronic signatures are not accepted."
        ),
        warning_level="warning",
    ),
    DocumentCategory(
        id="marriage_contract",
        label="Marriage or Prenuptial Agreement",
        description="Agreements related to marital rights or property division",
        warning=(
            "Family law documents often require judicial review, notarization, or "
            "customary formalities. E-signatures may not be legally sufficient."
        ),
        warning_level="warning",
    ),
    DocumentCategory(
        id="adoption",
        label="Adoption Papers",
        description="Legal documents for child adoption",
        warning=(
            "Adoption requires court approval and formal legal process. Electronic "
            "signing is not recognized for final adoption orders."
        ),
        warning_level="warning",
    ),
    DocumentCategory(
        id="will",
        label="Will or Codicil",
        description="Last will and testament or amendments",
        warning=(
            "Wills must be signed in wet ink, in the physical presence of two "
            "witnesses. Electronic signatures are invalid for wills."
        ),
        warning_level="danger",
    ),
    DocumentCategory(
        id="land_deed",
        label="Land Deed / Conveyance",
        description="Deeds for sale, mortgage, or transfer of land",
        warning=(
            "Land transactions require physical execution, notarization, and "
            "registration at the State Lands Registry. Electronic signatures alone "
            "are not legally binding."
        ),
        warning_level="danger",
    ),
)

_BY_ID = {category.id: category for category in DOCUMENT_CATEGORIES}
_SEPARATORS = re.compile(r"[_-]")


def get_category(category_id: str) -> DocumentCategory | None:
    return _BY_ID.get(category_id)


def category_label(category_id: str) -> str:
    """Display label, title-casing unknown ids (``foo_bar`` -> ``Foo Bar``)."""
    category = get_category(category_id)
    if category is not None:
        return category.label
    if not category_id:
        return "Unknown Category"
    return " ".join(word.capitalize() for word in _SEPARATORS.split(category_id) if word)


def ensure_signable(category_id: str | None) -> str:
    """Return the effective category id or raise if it may not be e-signed.

    An empty category falls back to ``general_contract``. Unknown ids are
    accepted; only the listed ``danger`` categories are refused.
    """
    effective = category_id or DEFAULT_CATEGORY
    category = get_category(effective)
    if category is not None and category.is_excluded:
        logger.info("category_excluded", category=effective)
        raise PolicyExcludedError(effective, category.warning)
    return effective
