from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models import ExchangeRate


class ExchangeRateService:
    """Per-user exchange rates, quoted as base-currency units per 1 foreign unit."""

    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.settings = get_settings()

    def rates(self) -> dict[str, Decimal]:
        rows = self.session.scalars(
            select(ExchangeRate)
            .where(ExchangeRate.user_id == self.user_id)
            .order_by(ExchangeRate.currency_code)
        ).all()
        return {row.currency_code: self.micros_to_rate(row.rate_micros) for row in rows}

    def rate_for(self, currency_code: str) -> Decimal:
        code = currency_code.strip().upper()
        micros = self.session.scalar(
            select(ExchangeRate.rate_micros).where(
                ExchangeRate.user_id == self.user_id,
                ExchangeRate.currency_code == code,
            )
        )
        if micros is None:
            return self.settings.default_exchange_rate
        return self.micros_to_rate(micros)

    def set_rate(self, currency_code: str, rate: Decimal) -> ExchangeRate:
        micros = self.rate_to_micros(rate)
        if micros <= 0:
            raise ValueError("Exchange rate must be at least 0.000001")
        code = currency_code.strip().upper()
        existing = self.session.scalar(
            select(ExchangeRate).where(
                ExchangeRate.user_id == self.user_id,
                ExchangeRate.currency_code == code,
            )
        )
        if existing:
            existing.rate_micros = micros
            return existing
        row = ExchangeRate(
            user_id=self.user_id,
            currency_code=code,
            rate_micros=micros,
        )
        self.session.add(row)
        return row

    @staticmethod
    def apply_rate(amount_cents: int, rate: Decimal) -> int:
        converted = (Decimal(amount_cents) * rate).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return int(converted)

    @staticmethod
    def rate_to_micros(rate: Decimal) -> int:
        return int(
            (Decimal(rate) * Decimal("1000000")).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )

    @staticmethod
    def micros_to_rate(micros: int) -> Decimal:
        return Decimal(micros) / Decimal("1000000")
