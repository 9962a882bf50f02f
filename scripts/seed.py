import sys
import os
import random
from sqlalchemy.orm import Session
from datetime import date, timedelta
from decimal import Decimal
from faker import Faker

# Add the project root to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from telem.db.core import session_local, init_db, UserDB, UserRole, AnalysisType, CalculatorStatus
from telem.crud import crud_user, crud_setting, crud_property, crud_calculator, crud_investment, crud_analysis
from telem.models.user import UserCreate
from telem.models.property import PropertyCreate
from telem.models.calculator import CalculatorCreate
from telem.models.investment import InvestmentCreate
from telem.models.analysis import AnalysisCreate

fake = Faker()

DEFAULT_SETTINGS = {
    "exchangeRate": ("3.95", "EUR to ILS exchange rate"),
    "vatRate": ("19", "Cyprus VAT rate, percent"),
    "mortgageRateIsrael": ("4.5", "Typical Israeli mortgage rate, percent"),
    "mortgageRateCyprus": ("3.8", "Typical Cypriot mortgage rate, percent"),
}

LOCATIONS = ["Limassol", "Larnaca", "Paphos", "Nicosia", "Ayia Napa", "Protaras"]


def _user(username: str, name: str) -> UserCreate:
    return UserCreate(
        username=username,
        password="telem-password",
        name=name,
        email=f"{username}@example.com",
        phone=fake.numerify("05########"),
    )


def seed_database(investor_count: int = 5):
    """
    Fills the database with settings, one advisor, a handful of investors and
    their calculators, investment options and analyses.
    """
    init_db()
    db: Session = session_local()

    try:
        # Check if data exists to prevent duplicate seeding
        if db.query(UserDB).count() > 0:
            print("Database appears to be already seeded. Exiting.")
            return

        print("Seeding settings...")
        for key, (value, description) in DEFAULT_SETTINGS.items():
            crud_setting.upsert_db_setting(db, key, value, description)

        print("Creating advisor (username 'advisor', password 'telem-password')...")
        crud_user.create_db_user(db, _user("advisor", fake.name()), role=UserRole.ADVISOR)

        print("Creating property catalog...")
        properties = []
        for i in range(12):
            price = Decimal(random.randrange(150_000, 600_000, 5_000))
            properties.append(crud_property.create_db_property(db, PropertyCreate(
                name=f"{fake.last_name()} Residences {i + 1}",
                price_without_vat=price,
                monthly_rent=(price * Decimal("0.005")).quantize(Decimal("1")),
                guaranteed_rent=random.random() < 0.3,
                delivery_date=date.today() + timedelta(days=random.randint(90, 900)),
                bedrooms=random.randint(1, 4),
                location=random.choice(LOCATIONS),
            )))

        for i in range(investor_count):
            print(f"--- Seeding investor {i + 1}/{investor_count} ---")
            investor = crud_user.create_db_user(db, _user(f"investor{i + 1}", fake.name()))

            for j in range(random.randint(1, 3)):
                calculator = crud_calculator.create_db_calculator(db, CalculatorCreate(
                    user_id=investor.id,
                    name=f"{fake.word().title()} scenario {j + 1}",
                    self_equity=Decimal(random.randrange(50_000, 250_000, 10_000)),
                    has_mortgage=random.random() < 0.7,
                    has_property_in_israel=random.random() < 0.5,
                    status=random.choice(list(CalculatorStatus)),
                ))

                options = random.sample(properties, k=random.randint(2, 4))
                investments = []
                for k, prop in enumerate(options):
                    investments.append(crud_investment.create_db_investment(db, InvestmentCreate(
                        calculator_id=calculator.id,
                        property_id=prop.id,
                        is_selected=(k == 0),
                        has_furniture=random.random() < 0.5,
                        has_property_management=random.random() < 0.5,
                    )))

                selected = investments[0]
                loan = max(float(selected.effective_price) - float(calculator.self_equity), 10_000.0)
                crud_analysis.create_db_analysis(db, AnalysisCreate(
                    calculator_id=calculator.id,
                    investment_id=selected.id,
                    name="Mortgage",
                    type=AnalysisType.MORTGAGE,
                    parameters={"loanAmount": loan, "interestRate": 4.5, "loanTerm": 25, "loanType": "israel"},
                    is_default=True,
                ))
                crud_analysis.create_db_analysis(db, AnalysisCreate(
                    calculator_id=calculator.id,
                    investment_id=selected.id,
                    name="Yield",
                    type=AnalysisType.YIELD,
                    parameters={
                        "purchasePrice": float(selected.effective_price),
                        "monthlyRent": float(selected.effective_monthly_rent),
                        "closingCosts": 8_000,
                        "vacancyRate": 5,
                        "expenseRate": 15,
                    },
                    is_default=True,
                ))
                crud_analysis.create_db_analysis(db, AnalysisCreate(
                    calculator_id=calculator.id,
                    name="Options side by side",
                    type=AnalysisType.COMPARISON,
                    parameters={
                        "investmentIds": [investment.id for investment in investments],
                        "parameters": ["price", "monthlyRent", "yield"],
                    },
                ))

            print(f"Investor {i + 1} and associated data seeded.")

        print("Successfully seeded database.")

    except Exception as e:
        print(f"An error occurred: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
