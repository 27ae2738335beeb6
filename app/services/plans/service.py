import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.subscription import SubscriptionPlan
from app.payments.types import AccessTier

logger = logging.getLogger(__name__)

# id, name, tier, monthly, annual, can_message
DEFAULT_PLANS = [
    ("BASIC", "Basic", AccessTier.BASIC, "9.99", "95.88", False),
    ("PREMIUM", "Premium", AccessTier.PREMIUM, "19.99", "191.88", True),
    ("VIP", "VIP", AccessTier.VIP, "49.99", "479.88", True),
]


class PlanService:
    def __init__(self, db: Session):
        self.db = db

    def list_active(self) -> list[SubscriptionPlan]:
        return (
            self.db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.enabled.is_(True))
            .order_by(SubscriptionPlan.order_index)
            .all()
        )

    def get(self, plan_id: str) -> SubscriptionPlan | None:
        return self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).one_or_none()

    def seed_default_plans(self) -> int:
        """Добавить отсутствующие тарифы по умолчанию. Существующие не трогаем."""
        added = 0
        for idx, (plan_id, name, tier, monthly, annual, can_message) in enumerate(DEFAULT_PLANS):
            if self.get(plan_id) is not None:
                continue
            self.db.add(
                SubscriptionPlan(
                    id=plan_id,
                    name=name,
                    access_tier=tier.value,
                    monthly_price=Decimal(monthly),
                    annual_price=Decimal(annual),
                    can_message=can_message,
                    enabled=True,
                    order_index=idx,
                )
            )
            added += 1
        self.db.flush()
        if added:
            logger.info("default_plans_seeded", extra={"outcome": str(added)})
        return added
