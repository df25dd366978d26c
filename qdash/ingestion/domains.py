"""Upload domains and their header alias maps.

Every upload screen feeds one collection. The normalizer is shared; the
only per-domain inputs are the record kind, the target collection, and the
header aliases each field accepts (preferred header first).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from qdash.errors import InvalidInputError


class DomainKind(str, Enum):
    """Shape of the records a domain produces."""

    DEFECT_TYPE = "defect_type"
    PROCESS_QUALITY = "process_quality"
    PARTS_PRICE = "parts_price"


DATE_ALIASES = ("일자", "날짜", "생산일자", "기준일자", "Date", "data_date")

CUSTOMER_ALIASES = ("고객사", "고객", "거래처", "Customer")
VEHICLE_MODEL_ALIASES = ("차종", "모델", "Model", "Vehicle Model")
PART_CODE_ALIASES = ("품번", "부품코드", "품목코드", "Part No")
PART_NAME_ALIASES = ("품명", "부품명", "품목명", "Part Name")
PROCESS_ALIASES = ("공정", "공정명", "Process")


@dataclass(frozen=True)
class DomainSpec:
    """Upload domain definition."""

    name: str
    collection: str
    kind: DomainKind
    label: str
    aliases: dict[str, tuple[str, ...]] = field(default_factory=dict)
    date_aliases: tuple[str, ...] = DATE_ALIASES

    @property
    def period_scoped(self) -> bool:
        """Whether a target month replaces existing records for that month."""
        return self.kind is not DomainKind.PARTS_PRICE


def _defect_type_domain(name: str, label: str, extra_process: tuple[str, ...] = ()) -> DomainSpec:
    return DomainSpec(
        name=name,
        collection=name,
        kind=DomainKind.DEFECT_TYPE,
        label=label,
        aliases={
            "customer": CUSTOMER_ALIASES,
            "part_code": PART_CODE_ALIASES,
            "part_name": PART_NAME_ALIASES,
            "process": PROCESS_ALIASES + extra_process,
            "vehicle_model": VEHICLE_MODEL_ALIASES,
        },
    )


DOMAINS: dict[str, DomainSpec] = {
    spec.name: spec
    for spec in (
        _defect_type_domain("process_defect_types", "공정 불량유형"),
        _defect_type_domain("painting_defect_types", "도장 불량유형", ("도장공정", "도장라인")),
        _defect_type_domain("assembly_defect_types", "조립 불량유형", ("조립공정", "조립라인")),
        DomainSpec(
            name="process_quality",
            collection="process_quality",
            kind=DomainKind.PROCESS_QUALITY,
            label="공정품질",
            aliases={
                "customer": CUSTOMER_ALIASES,
                "part_type": ("부품유형", "품목구분", "구분", "Part Type"),
                "vehicle_model": VEHICLE_MODEL_ALIASES,
                "product_name": ("품명", "제품명", "Product"),
                "production_qty": ("생산수량", "생산량", "Production Qty"),
                "defect_qty": ("불량수량", "불량수", "Defect Qty"),
                "defect_amount": ("불량금액", "Defect Amount"),
            },
        ),
        DomainSpec(
            name="parts_price",
            collection="parts_price",
            kind=DomainKind.PARTS_PRICE,
            label="부품단가",
            aliases={
                "part_name": PART_NAME_ALIASES,
                "part_code": PART_CODE_ALIASES,
                "customer": CUSTOMER_ALIASES,
                "vehicle_model": VEHICLE_MODEL_ALIASES,
                "unit_price": ("단가", "Unit Price"),
            },
        ),
    )
}


def get_domain(name: str) -> DomainSpec:
    """Look up a domain by name.

    Raises:
        InvalidInputError: If the domain is unknown
    """
    try:
        return DOMAINS[name]
    except KeyError:
        raise InvalidInputError(
            f"Unknown upload domain: {name}. Expected one of: {', '.join(DOMAINS)}"
        ) from None
