# src/treasury/ledger/constants.py
from __future__ import annotations

"""Protocol-wide constants.

Rates are integers scaled by their own MAX_* constant. Amounts are unsigned
integers with 18 fractional digits unless a currency says otherwise.
"""

# uint256 range; every stored amount and every intermediate product must fit.
MAX_UINT256: int = 2**256 - 1

# Redemption / reserved rates: 10_000 == 100%.
MAX_REDEMPTION_RATE: int = 10_000
MAX_RESERVED_RATE: int = 10_000

# Fees: net = gross * FEE_SCALE / (FEE_SCALE + fee). A fee of 10 is 5%.
FEE_SCALE: int = 200
MAX_FEE: int = 10
DEFAULT_FEE: int = 10

# Fee discounts from the gauge: 1_000_000 == 100% off.
MAX_FEE_DISCOUNT: int = 1_000_000

# Price feeds and period weights use 18 fractional digits.
PRICE_PRECISION: int = 18
WEIGHT_PRECISION: int = 18

# Project that collects protocol fees.
FEE_PROJECT_ID: int = 1

# Currency ids.
CURRENCY_ETH: int = 1
CURRENCY_USD: int = 2

# Permission ids checked against the permission oracle.
PERMISSION_REDEEM: int = 2
PERMISSION_MIGRATE: int = 3
PERMISSION_USE_ALLOWANCE: int = 17
