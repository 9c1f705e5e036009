"""
Pluggable tax and shipping inputs for order pricing.

Real rate computation lives outside this backend; the defaults charge
nothing so totals are subtotal minus discount.
"""
from typing import Protocol


class TaxCalculator(Protocol):
    def tax_for(self, subtotal: float, items: list, shipping_address: dict) -> float: ...


class ShippingCalculator(Protocol):
    def shipping_for(self, subtotal: float, items: list, shipping_address: dict) -> float: ...


class ZeroTax:
    def tax_for(self, subtotal, items, shipping_address):
        return 0.0


class FlatShipping:
    def __init__(self, amount: float = 0.0):
        self.amount = amount

    def shipping_for(self, subtotal, items, shipping_address):
        return self.amount


def order_total(subtotal: float, tax: float, shipping: float, discount: float) -> float:
    return round(subtotal + tax + shipping - discount, 2)
