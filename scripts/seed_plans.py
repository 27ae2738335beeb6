#!/usr/bin/env python3
"""
Создать таблицы и тарифы подписки по умолчанию (BASIC / PREMIUM / VIP).
Запуск из корня проекта: python -m scripts.seed_plans
или: PYTHONPATH=. python scripts/seed_plans.py
"""
import os
import sys

# корень проекта в PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.session import SessionLocal, create_tables
from app.services.plans.service import PlanService


def main():
    create_tables()
    db = SessionLocal()
    try:
        added = PlanService(db).seed_default_plans()
        db.commit()
        if added:
            print(f"Добавлено тарифов: {added}")
        else:
            print("Все тарифы уже есть.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
