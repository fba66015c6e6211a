"""
Pricing engine and binding availability filter.

Everything here is a pure function of (service, configuration, page count):
no catalog fetches, no clock, no I/O, and no exceptions for ordinary input.
The same functions serve the wizard, the standalone quote endpoint and the
order service's re-validation.

Pricing modes:
    Surcharge options (print type, paper size, paper type, GSM, print side)
    are per-page unless they carry only a per-copy price. Binding options
    are per-copy unless they carry only a per-page price.

Example:
    pricing = calculate_item_pricing(service, configuration, page_count=10)
    pricing.subtotal  # 675.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, List, Tuple

from models.catalog import (
    ALL_CATEGORIES,
    BINDING,
    DOUBLE_SIDE,
    NO_BINDING,
    SURCHARGE_CATEGORIES,
    BindingOption,
    PricingOption,
    Service,
    ServiceConfiguration,
)


CURRENCY_SYMBOL = "₹"


# =============================================================================
# MODE RULES
# =============================================================================

def is_surcharge_per_copy(option: PricingOption) -> bool:
    """Surcharge options are per-copy only when they carry nothing but a per-copy price."""
    return option.copy_price > 0 and option.page_price == 0


def surcharge_amount(option: PricingOption) -> float:
    return option.price_per_page or option.price_per_copy or 0.0


def is_binding_per_copy(option: PricingOption) -> bool:
    """Binding defaults to per-copy; it is per-page only when it carries nothing but a per-page price."""
    return option.copy_price > 0 or option.page_price == 0


def binding_amount(option: PricingOption) -> float:
    return option.price_per_copy or option.price_per_page or 0.0


def total_pages_for(page_count: int, print_side: str) -> int:
    """Physical sheets per copy: duplex halves the count, rounding up."""
    if print_side == DOUBLE_SIDE:
        return math.ceil(page_count / 2)
    return page_count


# =============================================================================
# ITEM PRICING
# =============================================================================

@dataclass(frozen=True)
class ItemPricing:
    """
    Derived price breakdown for one order item.

    Never edited field by field: a configuration change recomputes the whole
    record with calculate_item_pricing().
    """

    base_price_per_page: float = 0.0
    print_type_price: float = 0.0
    paper_size_price: float = 0.0
    paper_type_price: float = 0.0
    gsm_price: float = 0.0
    print_side_price: float = 0.0
    binding_price: float = 0.0

    price_per_page: float = 0.0
    """Base price plus every per-page surcharge."""

    price_per_copy: float = 0.0
    """Sum of every per-copy surcharge, binding included."""

    total_pages: int = 0
    copies: int = 1
    subtotal: float = 0.0

    print_type_is_per_copy: bool = False
    paper_size_is_per_copy: bool = False
    paper_type_is_per_copy: bool = False
    gsm_is_per_copy: bool = False
    print_side_is_per_copy: bool = False
    binding_is_per_copy: bool = False

    def category_price(self, pricing_key: str) -> float:
        return self.to_dict()[f"{pricing_key}Price"]

    def category_is_per_copy(self, pricing_key: str) -> bool:
        return self.to_dict()[f"{pricing_key}IsPerCopy"]

    def to_dict(self) -> Dict[str, Any]:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemPricing":
        """Create from a camelCase pricing snapshot (missing keys take defaults)."""
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            key = _camel(f.name)
            if key not in data or data[key] is None:
                continue
            value = data[key]
            if f.name.endswith("_is_per_copy"):
                kwargs[f.name] = bool(value)
            elif f.name in ("total_pages", "copies"):
                kwargs[f.name] = int(value)
            else:
                kwargs[f.name] = float(value)
        return cls(**kwargs)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def calculate_item_pricing(
    service: Service,
    configuration: ServiceConfiguration,
    page_count: int,
) -> ItemPricing:
    """
    Price one item.

    Args:
        service: The item's own service snapshot
        configuration: Selected option values and copies
        page_count: Pages in the file (0 while it is still being counted)

    Returns:
        A fresh ItemPricing. Unknown option values contribute nothing.
    """
    values: Dict[str, Any] = {}
    per_page_total = 0.0
    per_copy_total = 0.0

    for category in SURCHARGE_CATEGORIES:
        option = service.find_option(category, configuration.value_for(category))
        price = surcharge_amount(option) if option else 0.0
        per_copy = is_surcharge_per_copy(option) if option else False

        values[f"{category.config_field}_price"] = price
        values[f"{category.config_field}_is_per_copy"] = per_copy
        if per_copy:
            per_copy_total += price
        else:
            per_page_total += price

    binding = service.find_option(BINDING, configuration.binding_option)
    binding_price = binding_amount(binding) if binding else 0.0
    binding_per_copy = is_binding_per_copy(binding) if binding else False
    if binding_per_copy:
        per_copy_total += binding_price
    else:
        per_page_total += binding_price

    total_pages = total_pages_for(page_count, configuration.print_side)
    copies = configuration.copies
    price_per_page = service.base_price_per_page + per_page_total
    subtotal = price_per_page * total_pages * copies + per_copy_total * copies

    return ItemPricing(
        base_price_per_page=service.base_price_per_page,
        binding_price=binding_price,
        binding_is_per_copy=binding_per_copy,
        price_per_page=price_per_page,
        price_per_copy=per_copy_total,
        total_pages=total_pages,
        copies=copies,
        subtotal=subtotal,
        **values,
    )


def calculate_order_totals(item_subtotals: Iterable[float]) -> Tuple[float, float]:
    """
    Order-level (subtotal, total). Total equals subtotal; delivery, packing
    and coupons are applied later by modules.charges.
    """
    subtotal = sum(item_subtotals, 0.0)
    return subtotal, subtotal


def option_price_label(option: PricingOption, binding: bool = False) -> str:
    """Short price tag for an option, e.g. '+₹5/page' or '+₹50/copy'. Empty when free."""
    if binding:
        amount, per_copy = binding_amount(option), is_binding_per_copy(option)
    else:
        amount, per_copy = surcharge_amount(option), is_surcharge_per_copy(option)
    if not amount:
        return ""
    unit = "copy" if per_copy else "page"
    return f"+{CURRENCY_SYMBOL}{amount:g}/{unit}"


def pricing_mismatches(
    expected: ItemPricing,
    actual: ItemPricing,
    tolerance: float = 0.01,
) -> List[str]:
    """camelCase names of the fields where two breakdowns disagree."""
    expected_data = expected.to_dict()
    actual_data = actual.to_dict()
    mismatched = []
    for key, value in expected_data.items():
        other = actual_data.get(key)
        if isinstance(value, bool):
            if bool(other) != value:
                mismatched.append(key)
        elif abs(float(other or 0) - float(value)) > tolerance:
            mismatched.append(key)
    return mismatched


def pricing_matches(expected: ItemPricing, actual: ItemPricing, tolerance: float = 0.01) -> bool:
    return not pricing_mismatches(expected, actual, tolerance)


# =============================================================================
# BINDING AVAILABILITY
# =============================================================================

def available_binding_options(service: Service, page_count: int) -> List[BindingOption]:
    """
    Binding options the user may pick at this page count.

    Only the options with the highest satisfied page threshold are offered
    (several if they tie). An empty list means binding is unavailable.
    """
    satisfied = [
        option for option in service.binding_options
        if not option.min_pages or page_count >= option.min_pages
    ]
    if not satisfied:
        return []

    max_threshold = max(option.threshold for option in satisfied)
    return [option for option in satisfied if option.threshold == max_threshold]


def repair_binding(
    configuration: ServiceConfiguration,
    service: Service,
    page_count: int,
) -> ServiceConfiguration:
    """
    Reset a binding choice that is no longer offered at this page count.

    Empty and explicit 'none' choices are kept as they are.
    """
    selected = configuration.binding_option
    if not selected or selected == NO_BINDING:
        return configuration

    available = available_binding_options(service, page_count)
    if any(option.value == selected for option in available):
        return configuration

    replacement = available[0].value if available else ""
    return configuration.with_changes(binding_option=replacement)


def binding_unavailable_message(page_count: int) -> str:
    return f"No binding options available for {page_count} pages."


def allowed_values(service: Service, category_name: str, page_count: int) -> List[str]:
    """Values a configuration may hold for a category at this page count."""
    for category in ALL_CATEGORIES:
        if category.name != category_name:
            continue
        if category is BINDING:
            values = [o.value for o in available_binding_options(service, page_count)]
            return values + ([NO_BINDING] if NO_BINDING not in values else [])
        return [o.value for o in service.options_for(category)]
    return []


def binding_choices(service: Service, page_count: int) -> Dict[str, Any]:
    """
    Binding availability as shown to the customer.

    Shared by the calculator and the wizard so both answer with the same
    shape: bare option values plus a price label per value.
    """
    available = available_binding_options(service, page_count)
    return {
        "availableBindingOptions": [o.value for o in available],
        "bindingPriceLabels": {o.value: option_price_label(o, binding=True) for o in available},
        "bindingMessage": None if available else binding_unavailable_message(page_count),
    }


def quote(service: Service, configuration: ServiceConfiguration, page_count: int) -> Dict[str, Any]:
    """Standalone calculator response: pricing plus binding availability."""
    repaired = repair_binding(configuration, service, page_count)
    pricing = calculate_item_pricing(service, repaired, page_count)
    result: Dict[str, Any] = {
        "configuration": repaired.to_dict(),
        "pricing": pricing.to_dict(),
    }
    result.update(binding_choices(service, page_count))
    return result
