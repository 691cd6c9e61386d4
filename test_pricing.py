"""
test_pricing.py — Line pricing and discount ("trade dividend") rules.
Run: pytest test_pricing.py -v
"""
import pytest
from decimal import Decimal

from app.errors import ValidationError
from app.sales.pricing import (
    DiscountKind, DiscountPolicy, compute_line_total, compute_discount_amount, make_discount,
)


POLICIES = [
    DiscountPolicy.none(),
    DiscountPolicy.percentage('12.5'),
    DiscountPolicy.divisor('3'),
    DiscountPolicy.divisor('0'),
]


# ── 1. none ───────────────────────────────────────────────────────

@pytest.mark.parametrize('price, qty', [('0', 1), ('12.50', 4), ('99.99', 7)])
def test_no_discount_is_price_times_quantity(price, qty):
    assert compute_line_total(Decimal(price), qty, DiscountPolicy.none()) == Decimal(price) * qty


# ── 2. percentage ─────────────────────────────────────────────────

@pytest.mark.parametrize('percent', ['0', '10', '25', '50', '100'])
def test_percentage_reduces_line(percent):
    p = Decimal(percent)
    expected = Decimal('200.00') * 3 * (1 - p / 100)
    assert compute_line_total(Decimal('200.00'), 3, DiscountPolicy.percentage(p)) == expected


def test_percentage_is_monotonic():
    totals = [
        compute_line_total(Decimal('149.99'), 2, DiscountPolicy.percentage(p))
        for p in range(0, 101, 5)
    ]
    assert totals == sorted(totals, reverse=True)
    assert totals[-1] == Decimal('0')


# ── 3. divisor ────────────────────────────────────────────────────

def test_divisor_divides_line():
    # 90 × 2 = 180 → ÷3 = 60
    assert compute_line_total(Decimal('90'), 2, DiscountPolicy.divisor(3)) == Decimal('60')


@pytest.mark.parametrize('divisor', ['0', '-2'])
def test_non_positive_divisor_falls_back_to_mrp(divisor):
    assert compute_line_total(Decimal('90'), 2, DiscountPolicy.divisor(divisor)) == Decimal('180')


def test_divisor_result_rounded_to_paise():
    assert compute_line_total(Decimal('100'), 1, DiscountPolicy.divisor(3)) == Decimal('33.33')
    assert compute_discount_amount(Decimal('100'), 1, DiscountPolicy.divisor(3)) == Decimal('66.67')


# ── 4. discount amount ────────────────────────────────────────────

@pytest.mark.parametrize('policy', POLICIES)
def test_discount_amount_is_gross_minus_line_total(policy):
    price, qty = Decimal('47.30'), 6
    assert compute_discount_amount(price, qty, policy) == price * qty - compute_line_total(price, qty, policy)
    assert compute_discount_amount(price, qty, policy) >= 0


# ── 5. purity ─────────────────────────────────────────────────────

@pytest.mark.parametrize('policy', POLICIES)
def test_same_inputs_same_output(policy):
    first = compute_line_total(Decimal('19.95'), 3, policy)
    second = compute_line_total(Decimal('19.95'), 3, policy)
    assert first == second


# ── Scenarios ─────────────────────────────────────────────────────

def test_ten_percent_on_three_units():
    policy = DiscountPolicy.percentage(10)
    assert compute_line_total(Decimal('100'), 3, policy) == Decimal('270.00')
    assert compute_discount_amount(Decimal('100'), 3, policy) == Decimal('30.00')


# ── make_discount (caller-side validation) ────────────────────────

def test_make_discount_builds_each_variant():
    assert make_discount('none', '50') == DiscountPolicy.none()
    assert make_discount('percentage', '15') == DiscountPolicy.percentage('15')
    assert make_discount('divisor', 2) == DiscountPolicy.divisor('2')
    assert make_discount(None) == DiscountPolicy.none()


@pytest.mark.parametrize('kind', ['percentage', 'divisor'])
@pytest.mark.parametrize('value', [None, '', '0', 0])
def test_blank_or_zero_value_means_no_discount(kind, value):
    assert make_discount(kind, value).kind is DiscountKind.none


@pytest.mark.parametrize('kind, value, message', [
    ('percentage', '100.5', 'between 0 and 100'),
    ('percentage', '-5', 'cannot be negative'),
    ('divisor', '0.5', '1 or greater'),
    ('divisor', '-3', 'cannot be negative'),
    ('divisor', 'abc', 'valid number'),
    ('flat', '10', 'Unknown discount type'),
    ('divisor', '1.00006', 'at most 4 decimal places'),
    ('percentage', '12.34567', 'at most 4 decimal places'),
])
def test_make_discount_rejects_bad_input(kind, value, message):
    with pytest.raises(ValidationError) as exc:
        make_discount(kind, value)
    assert message in exc.value.message
    assert exc.value.status_code == 400


@pytest.mark.parametrize('value', ['1.0006', '12.3450', '2.500000'])
def test_discount_up_to_four_places_accepted(value):
    assert make_discount('divisor', value).value == Decimal(value)


def test_switching_variant_keeps_only_new_value():
    policy = DiscountPolicy.percentage('10')
    policy = make_discount('divisor', '4')
    assert policy.to_dict() == {'type': 'divisor', 'value': '4'}


def test_labels():
    assert DiscountPolicy.percentage('10').label == '10%'
    assert DiscountPolicy.divisor('2.5').label == 'Div. by 2.5'
    assert DiscountPolicy.none().label == '-'


def test_policy_dict_form():
    policy = DiscountPolicy.percentage('7.5')
    assert DiscountPolicy.from_dict(policy.to_dict()) == policy
    assert DiscountPolicy.from_dict(None) == DiscountPolicy.none()
