"""
Service catalog data models.

These models describe what can be ordered: sellable services, the option
choices each service offers per category, and the shop-wide pricing
settings and coupons.

Thread Safety:
    - Every model here is a frozen dataclass (immutable)
    - CatalogSnapshot is replaced wholesale by the catalog thread and read
      by routes via an atomic reference swap

Wire format:
    from_dict()/to_dict() use the camelCase JSON shape of the catalog file
    and the public API (pricePerPage, minPages, basePricePerPage, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import (
    InvalidOptionError,
    OptionPricingConflictError,
    ServiceNotFoundError,
)


NO_BINDING = "none"
"""Explicit 'no binding' choice; valid for every service."""

DOUBLE_SIDE = "double-side"
"""printSide value that halves the physical sheet count."""


def _price(value: Any) -> Optional[float]:
    """Normalize a stored price: zero, empty and missing all mean 'not set'."""
    if value is None or value == "":
        return None
    number = float(value)
    return number if number != 0 else None


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# OPTION CATEGORIES
# =============================================================================

@dataclass(frozen=True)
class OptionCategory:
    """Maps one option category across the catalog, service and configuration shapes."""

    name: str
    """Catalog category name (e.g. 'printType')."""

    config_field: str
    """ServiceConfiguration attribute (e.g. 'print_type')."""

    service_field: str
    """Service attribute holding the option tuple (e.g. 'print_types')."""

    service_key: str
    """camelCase service JSON key (e.g. 'printTypes')."""

    pricing_key: str
    """Prefix of the ItemPricing keys (e.g. 'printType' -> printTypePrice)."""


PRINT_TYPE = OptionCategory("printType", "print_type", "print_types", "printTypes", "printType")
PAPER_SIZE = OptionCategory("paperSize", "paper_size", "paper_sizes", "paperSizes", "paperSize")
PAPER_TYPE = OptionCategory("paperType", "paper_type", "paper_types", "paperTypes", "paperType")
GSM = OptionCategory("gsm", "gsm", "gsm_options", "gsmOptions", "gsm")
PRINT_SIDE = OptionCategory("printSide", "print_side", "print_sides", "printSides", "printSide")
BINDING = OptionCategory("bindingOption", "binding_option", "binding_options", "bindingOptions", "binding")

SURCHARGE_CATEGORIES: Tuple[OptionCategory, ...] = (
    PRINT_TYPE, PAPER_SIZE, PAPER_TYPE, GSM, PRINT_SIDE,
)
"""The five non-binding categories, in pricing order."""

ALL_CATEGORIES: Tuple[OptionCategory, ...] = SURCHARGE_CATEGORIES + (BINDING,)

CATEGORY_NAMES = tuple(c.name for c in ALL_CATEGORIES)


def get_category(name: str) -> OptionCategory:
    """Look up a category by its catalog name."""
    for category in ALL_CATEGORIES:
        if category.name == name:
            return category
    raise InvalidOptionError("category", name, list(CATEGORY_NAMES))


# =============================================================================
# OPTIONS
# =============================================================================

@dataclass(frozen=True)
class PricingOption:
    """
    A named choice within a category carrying at most one pricing mode.

    A price of 0 or None means "no surcharge in that mode".
    """

    value: str
    price_per_page: Optional[float] = None
    price_per_copy: Optional[float] = None

    @property
    def page_price(self) -> float:
        return self.price_per_page or 0.0

    @property
    def copy_price(self) -> float:
        return self.price_per_copy or 0.0

    def validate(self, category: str) -> None:
        """
        Raises:
            OptionPricingConflictError: If both pricing modes are positive
        """
        if self.page_price > 0 and self.copy_price > 0:
            raise OptionPricingConflictError(category, self.value)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"value": self.value}
        if self.price_per_page is not None:
            data["pricePerPage"] = self.price_per_page
        if self.price_per_copy is not None:
            data["pricePerCopy"] = self.price_per_copy
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingOption":
        return cls(
            value=str(data.get("value", "")),
            price_per_page=_price(data.get("pricePerPage")),
            price_per_copy=_price(data.get("pricePerCopy")),
        )


@dataclass(frozen=True)
class PriceRange:
    """Tiered binding price for a page range (stored, not used by the calculator)."""

    min: int
    max: int
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {"min": self.min, "max": self.max, "price": self.price}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceRange":
        return cls(
            min=int(data.get("min", 0)),
            max=int(data.get("max", 0)),
            price=float(data.get("price", 0)),
        )


@dataclass(frozen=True)
class BindingOption(PricingOption):
    """
    Binding choice with a page-count threshold.

    The option becomes selectable once the page count reaches min_pages.
    fixed_price and price_ranges are carried for admin/invoice views only.
    """

    min_pages: Optional[int] = None
    fixed_price: Optional[float] = None
    price_ranges: Tuple[PriceRange, ...] = ()

    @property
    def threshold(self) -> int:
        """Page threshold, with 'unset' treated as 0."""
        return self.min_pages or 0

    def validate(self, category: str = BINDING.name) -> None:
        # Fixed/ranged binding prices replace the per-page/per-copy pair
        if (self.fixed_price or 0) > 0 or self.price_ranges:
            return
        super().validate(category)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.min_pages is not None:
            data["minPages"] = self.min_pages
        if self.fixed_price is not None:
            data["fixedPrice"] = self.fixed_price
        if self.price_ranges:
            data["priceRanges"] = [r.to_dict() for r in self.price_ranges]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BindingOption":
        fixed_price = data.get("fixedPrice")
        return cls(
            value=str(data.get("value", "")),
            price_per_page=_price(data.get("pricePerPage")),
            price_per_copy=_price(data.get("pricePerCopy")),
            min_pages=_int_or_none(data.get("minPages")),
            fixed_price=float(fixed_price) if fixed_price not in (None, "") else None,
            price_ranges=tuple(PriceRange.from_dict(r) for r in data.get("priceRanges") or []),
        )


@dataclass(frozen=True)
class CatalogOption:
    """
    Standalone option-catalog entry managed by admins.

    Services copy options from here; (category, value) is unique.
    """

    id: str
    category: str
    label: str
    value: str
    is_active: bool = True
    price_per_page: Optional[float] = None
    price_per_copy: Optional[float] = None
    min_pages: Optional[int] = None
    fixed_price: Optional[float] = None
    price_ranges: Tuple[PriceRange, ...] = ()

    def validate(self) -> None:
        get_category(self.category)
        if self.category == BINDING.name:
            self.as_binding_option().validate()
        else:
            self.as_pricing_option().validate(self.category)

    def as_pricing_option(self) -> PricingOption:
        return PricingOption(self.value, self.price_per_page, self.price_per_copy)

    def as_binding_option(self) -> BindingOption:
        return BindingOption(
            value=self.value,
            price_per_page=self.price_per_page,
            price_per_copy=self.price_per_copy,
            min_pages=self.min_pages,
            fixed_price=self.fixed_price,
            price_ranges=self.price_ranges,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = (
            self.as_binding_option().to_dict()
            if self.category == BINDING.name
            else self.as_pricing_option().to_dict()
        )
        data.update({
            "id": self.id,
            "category": self.category,
            "label": self.label,
            "isActive": self.is_active,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogOption":
        binding = BindingOption.from_dict(data)
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            category=str(data.get("category", "")),
            label=str(data.get("label", "")).strip(),
            value=str(data.get("value", "")).strip(),
            is_active=bool(data.get("isActive", True)),
            price_per_page=binding.price_per_page,
            price_per_copy=binding.price_per_copy,
            min_pages=binding.min_pages,
            fixed_price=binding.fixed_price,
            price_ranges=binding.price_ranges,
        )


# =============================================================================
# SERVICE
# =============================================================================

@dataclass(frozen=True)
class Service:
    """
    A sellable printing offering.

    Order items keep their own Service snapshot, so replacing the catalog
    never changes the pricing of items already in a cart or an order.
    """

    id: str
    name: str
    base_price_per_page: float = 0.0
    custom_quotation: bool = False
    print_types: Tuple[PricingOption, ...] = ()
    paper_sizes: Tuple[PricingOption, ...] = ()
    paper_types: Tuple[PricingOption, ...] = ()
    gsm_options: Tuple[PricingOption, ...] = ()
    print_sides: Tuple[PricingOption, ...] = ()
    binding_options: Tuple[BindingOption, ...] = ()
    status: str = "active"
    image: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def options_for(self, category: OptionCategory) -> Tuple[PricingOption, ...]:
        return getattr(self, category.service_field)

    def find_option(self, category: OptionCategory, value: str) -> Optional[PricingOption]:
        """First option in the category whose value matches, or None."""
        for option in self.options_for(category):
            if option.value == value:
                return option
        return None

    def validate(self) -> None:
        """
        Write-time integrity checks.

        Raises:
            InvalidOptionError: If basePricePerPage is negative or the name is empty
            OptionPricingConflictError: If any option sets both pricing modes
            ValueError: If a category lists the same value twice
        """
        if not self.name:
            raise InvalidOptionError("name", self.name)
        if self.base_price_per_page < 0:
            raise InvalidOptionError("basePricePerPage", self.base_price_per_page)
        for category in ALL_CATEGORIES:
            seen = set()
            for option in self.options_for(category):
                if option.value in seen:
                    raise ValueError(f"Duplicate {category.name} option '{option.value}' in service '{self.name}'")
                seen.add(option.value)
                option.validate(category.name)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "basePricePerPage": self.base_price_per_page,
            "customQuotation": self.custom_quotation,
            "status": self.status,
            "image": self.image,
        }
        for category in ALL_CATEGORIES:
            data[category.service_key] = [o.to_dict() for o in self.options_for(category)]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Service":
        """
        Create a Service from catalog/API JSON and validate it.

        Raises:
            OptionPricingConflictError: If any option sets both pricing modes
        """
        kwargs: Dict[str, Any] = {}
        for category in SURCHARGE_CATEGORIES:
            kwargs[category.service_field] = tuple(
                PricingOption.from_dict(o) for o in data.get(category.service_key) or []
            )
        kwargs[BINDING.service_field] = tuple(
            BindingOption.from_dict(o) for o in data.get(BINDING.service_key) or []
        )

        service = cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=str(data.get("name", "")).strip(),
            base_price_per_page=float(data.get("basePricePerPage") or 0),
            custom_quotation=bool(data.get("customQuotation", False)),
            status=data.get("status", "active"),
            image=data.get("image"),
            **kwargs,
        )
        service.validate()
        return service


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ServiceConfiguration:
    """
    One selected value per option category plus the number of copies.

    Fixed shape: every category has exactly one field. Empty string means
    "nothing selected".
    """

    print_type: str = ""
    paper_size: str = ""
    paper_type: str = ""
    gsm: str = ""
    print_side: str = ""
    binding_option: str = ""
    copies: int = 1

    def value_for(self, category: OptionCategory) -> str:
        return getattr(self, category.config_field)

    def with_changes(self, **changes: Any) -> "ServiceConfiguration":
        return replace(self, **changes)

    @classmethod
    def default_for(cls, service: Service, page_count: int = 0) -> "ServiceConfiguration":
        """
        First option of every category; binding picks the first option
        available at page_count (empty if none is).
        """
        from modules.pricing import available_binding_options

        values = {
            category.config_field: (service.options_for(category)[0].value
                                    if service.options_for(category) else "")
            for category in SURCHARGE_CATEGORIES
        }
        available = available_binding_options(service, page_count)
        values[BINDING.config_field] = available[0].value if available else ""
        return cls(copies=1, **values)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {c.name: self.value_for(c) for c in ALL_CATEGORIES}
        data["copies"] = self.copies
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceConfiguration":
        values = {c.config_field: str(data.get(c.name) or "") for c in ALL_CATEGORIES}
        return cls(copies=int(data.get("copies", 1)), **values)


# =============================================================================
# PRICING SETTINGS & COUPONS
# =============================================================================

@dataclass(frozen=True)
class Threshold:
    """A charge that applies once the order amount reaches min_amount."""

    min_amount: float
    charge: float

    def to_dict(self) -> Dict[str, Any]:
        return {"minAmount": self.min_amount, "charge": self.charge}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Threshold":
        return cls(min_amount=float(data["minAmount"]), charge=float(data["charge"]))


@dataclass(frozen=True)
class PricingSettings:
    """Shop-wide delivery and packing charge tiers."""

    delivery_thresholds: Tuple[Threshold, ...] = ()
    packing_thresholds: Tuple[Threshold, ...] = ()
    is_delivery_enabled: bool = True
    is_packing_enabled: bool = True

    @classmethod
    def default(cls) -> "PricingSettings":
        """Settings used when the catalog does not define any."""
        return cls(
            delivery_thresholds=(
                Threshold(0, 50), Threshold(200, 30), Threshold(500, 0),
            ),
            packing_thresholds=(
                Threshold(0, 20), Threshold(1000, 0),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deliveryThresholds": [t.to_dict() for t in self.delivery_thresholds],
            "packingThresholds": [t.to_dict() for t in self.packing_thresholds],
            "isDeliveryEnabled": self.is_delivery_enabled,
            "isPackingEnabled": self.is_packing_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingSettings":
        # Tiers are kept sorted by minAmount
        def tiers(key: str) -> Tuple[Threshold, ...]:
            parsed = [Threshold.from_dict(t) for t in data.get(key) or []]
            return tuple(sorted(parsed, key=lambda t: t.min_amount))

        return cls(
            delivery_thresholds=tiers("deliveryThresholds"),
            packing_thresholds=tiers("packingThresholds"),
            is_delivery_enabled=bool(data.get("isDeliveryEnabled", True)),
            is_packing_enabled=bool(data.get("isPackingEnabled", True)),
        )


class CouponType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_DELIVERY = "free-delivery"


@dataclass(frozen=True)
class Coupon:
    """Discount code. Codes are stored upper-case."""

    code: str
    type: CouponType
    value: float = 0.0
    min_order_amount: float = 0.0
    max_discount_amount: Optional[float] = None
    expiry_date: Optional[datetime] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    is_active: bool = True
    display_in_checkout: bool = True
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "type": self.type.value,
            "value": self.value,
            "minOrderAmount": self.min_order_amount,
            "maxDiscountAmount": self.max_discount_amount,
            "expiryDate": self.expiry_date.isoformat() if self.expiry_date else None,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coupon":
        max_discount = data.get("maxDiscountAmount")
        return cls(
            code=str(data.get("code", "")).strip().upper(),
            type=CouponType(data.get("type", "fixed")),
            value=float(data.get("value") or 0),
            min_order_amount=float(data.get("minOrderAmount") or 0),
            max_discount_amount=float(max_discount) if max_discount is not None else None,
            expiry_date=_parse_datetime(data.get("expiryDate")),
            usage_limit=_int_or_none(data.get("usageLimit")),
            used_count=int(data.get("usedCount") or 0),
            is_active=bool(data.get("isActive", True)),
            display_in_checkout=bool(data.get("displayInCheckout", True)),
            description=data.get("description") or "",
        )


# =============================================================================
# SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Point-in-time, read-only view of the whole catalog.

    This is a FROZEN dataclass. The catalog service builds a new snapshot on
    every reload; pricing and ordering code receive it explicitly and never
    fetch catalog data themselves.
    """

    loaded_at: datetime
    """When this snapshot was loaded."""

    services: Tuple[Service, ...] = ()
    options: Tuple[CatalogOption, ...] = ()
    pricing_settings: PricingSettings = field(default_factory=PricingSettings.default)
    coupons: Tuple[Coupon, ...] = ()

    source: str = ""
    """Path the snapshot was loaded from."""

    STALE_AFTER_SECONDS = 120.0

    @property
    def age_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.loaded_at).total_seconds()

    @property
    def is_stale(self) -> bool:
        return self.age_seconds > self.STALE_AFTER_SECONDS

    @property
    def is_empty(self) -> bool:
        return not self.services

    def get_service(self, service_id: str) -> Optional[Service]:
        for service in self.services:
            if service.id == service_id:
                return service
        return None

    def require_service(self, service_id: str) -> Service:
        """
        Raises:
            ServiceNotFoundError: If no service has this id
        """
        service = self.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)
        return service

    def list_services(self, status: Optional[str] = None) -> List[Service]:
        """Services sorted by name, optionally filtered by status."""
        services = [s for s in self.services if status is None or s.status == status]
        return sorted(services, key=lambda s: s.name)

    def list_options(self, category: Optional[str] = None, active_only: bool = False) -> List[CatalogOption]:
        """Catalog options sorted by label."""
        options = [
            o for o in self.options
            if (category is None or o.category == category)
            and (not active_only or o.is_active)
        ]
        return sorted(options, key=lambda o: o.label)

    def find_coupon(self, code: str) -> Optional[Coupon]:
        wanted = (code or "").strip().upper()
        for coupon in self.coupons:
            if coupon.code == wanted:
                return coupon
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "") -> "CatalogSnapshot":
        """
        Build and validate a snapshot from catalog JSON.

        Raises:
            OptionPricingConflictError: If an option sets both pricing modes
            ValueError: On duplicate service ids or (category, value) pairs
        """
        services = tuple(Service.from_dict(s) for s in data.get("services") or [])
        service_ids = [s.id for s in services]
        if len(set(service_ids)) != len(service_ids):
            raise ValueError("Duplicate service id in catalog")

        options = tuple(CatalogOption.from_dict(o) for o in data.get("options") or [])
        seen = set()
        for option in options:
            option.validate()
            key = (option.category, option.value)
            if key in seen:
                raise ValueError(
                    f"This option already exists in the {option.category} category: {option.value}"
                )
            seen.add(key)

        settings_data = data.get("pricingSettings")
        pricing_settings = (
            PricingSettings.from_dict(settings_data) if settings_data else PricingSettings.default()
        )

        return cls(
            loaded_at=datetime.now(timezone.utc),
            services=services,
            options=options,
            pricing_settings=pricing_settings,
            coupons=tuple(Coupon.from_dict(c) for c in data.get("coupons") or []),
            source=source,
        )

    @classmethod
    def create_empty(cls) -> "CatalogSnapshot":
        """
        Empty snapshot for initialization before the first load.

        Marked stale immediately so routes know data isn't ready.
        """
        old_time = datetime(2000, 1, 1, tzinfo=timezone.utc)
        return cls(loaded_at=old_time)
