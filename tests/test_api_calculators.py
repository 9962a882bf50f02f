"""
API tests for calculators: role scoping, field allow-lists, duplication and delete.
"""

from decimal import Decimal
from fastapi import status

from telem.db.core import CalculatorDB, InvestmentDB


class TestListCalculators:

    def test_investor_sees_only_own(self, client, investor_headers, other_investor, make_calculator):
        mine = make_calculator("Mine")
        make_calculator("Theirs", user=other_investor)

        response = client.get("/api/calculators", headers=investor_headers)

        assert response.status_code == status.HTTP_200_OK
        assert [c["id"] for c in response.json()] == [mine.id]

    def test_investor_cannot_filter_by_another_user(self, client, investor_headers, other_investor):
        response = client.get(f"/api/calculators?userId={other_investor.id}", headers=investor_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_advisor_sees_all_and_can_filter(self, client, advisor_headers, other_investor, make_calculator):
        make_calculator("Mine")
        theirs = make_calculator("Theirs", user=other_investor)

        assert len(client.get("/api/calculators", headers=advisor_headers).json()) == 2

        filtered = client.get(f"/api/calculators?userId={other_investor.id}", headers=advisor_headers).json()
        assert [c["id"] for c in filtered] == [theirs.id]

    def test_recent(self, client, investor_headers, make_calculator):
        for i in range(3):
            make_calculator(f"Scenario {i}")

        response = client.get("/api/calculators/recent?limit=2", headers=investor_headers)
        assert len(response.json()) == 2


class TestReadCalculator:

    def test_wire_format(self, client, investor_headers, calculator):
        body = client.get(f"/api/calculators/{calculator.id}", headers=investor_headers).json()

        assert body["investorName"] == "Avi Investor"
        assert body["investmentOptionsCount"] == 0
        assert Decimal(body["selfEquity"]) == Decimal("60000")
        assert Decimal(body["vatRate"]) == Decimal("19")

    def test_foreign_calculator_forbidden(self, client, other_investor_headers, calculator):
        response = client.get(f"/api/calculators/{calculator.id}", headers=other_investor_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing(self, client, advisor_headers):
        response = client.get("/api/calculators/404", headers=advisor_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"message": "Calculator not found"}


class TestCreateCalculator:

    def test_advisor_creates_for_investor(self, client, advisor_headers, investor):
        response = client.post(
            "/api/calculators",
            json={"userId": investor.id, "name": "Limassol plan", "selfEquity": "75000", "hasMortgage": True},
            headers=advisor_headers,
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["userId"] == investor.id
        assert body["investorName"] == investor.name
        assert body["hasMortgage"] is True

    def test_investor_cannot_create_for_someone_else(self, client, investor_headers, other_investor):
        response = client.post(
            "/api/calculators", json={"userId": other_investor.id, "name": "Sneaky"}, headers=investor_headers
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing_name_is_400(self, client, advisor_headers, investor):
        response = client.post("/api/calculators", json={"userId": investor.id}, headers=advisor_headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Validation error"

    def test_unknown_owner_is_404(self, client, advisor_headers):
        response = client.post("/api/calculators", json={"userId": 404, "name": "Ghost"}, headers=advisor_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestUpdateCalculator:

    def test_investor_updates_allowed_fields(self, client, investor_headers, calculator):
        response = client.patch(
            f"/api/calculators/{calculator.id}",
            json={"selfEquity": "90000", "investmentPreference": "appreciation"},
            headers=investor_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert Decimal(response.json()["selfEquity"]) == Decimal("90000")
        assert response.json()["investmentPreference"] == "appreciation"

    def test_investor_disallowed_field_is_named_and_nothing_changes(self, client, db_session, investor_headers, calculator):
        response = client.patch(
            f"/api/calculators/{calculator.id}",
            json={"selfEquity": "90000", "exchangeRate": "5"},
            headers=investor_headers,
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["disallowedFields"] == ["exchangeRate"]

        db_session.refresh(calculator)
        assert calculator.self_equity == Decimal("60000")
        assert calculator.exchange_rate == Decimal("3.95")

    def test_advisor_updates_anything(self, client, advisor_headers, calculator):
        response = client.patch(
            f"/api/calculators/{calculator.id}",
            json={"name": "Renamed", "exchangeRate": "4.2", "status": "active"},
            headers=advisor_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Renamed"
        assert response.json()["status"] == "active"

    def test_explicit_null_is_rejected(self, client, advisor_headers, calculator):
        response = client.patch(f"/api/calculators/{calculator.id}", json={"name": None}, headers=advisor_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_field_is_rejected(self, client, advisor_headers, calculator):
        response = client.patch(f"/api/calculators/{calculator.id}", json={"color": "blue"}, headers=advisor_headers)
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestDuplicateCalculator:

    def test_investor_duplicates_own(self, client, db_session, investor, investor_headers, calculator, make_investment):
        make_investment(calculator)
        make_investment(calculator)

        response = client.post(f"/api/calculators/{calculator.id}/duplicate", headers=investor_headers)

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["id"] != calculator.id
        assert body["investmentOptionsCount"] == 2
        assert body["analysesCount"] == 0
        assert db_session.query(InvestmentDB).filter(InvestmentDB.calculator_id == body["id"]).count() == 2

        db_session.refresh(investor)
        assert investor.calculators_count == 2

    def test_foreign_duplicate_forbidden(self, client, other_investor_headers, calculator):
        response = client.post(f"/api/calculators/{calculator.id}/duplicate", headers=other_investor_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestDeleteCalculator:

    def test_investor_cannot_delete(self, client, db_session, investor_headers, calculator):
        response = client.delete(f"/api/calculators/{calculator.id}", headers=investor_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert db_session.query(CalculatorDB).count() == 1

    def test_advisor_deletes(self, client, db_session, advisor_headers, investor, calculator, make_investment):
        make_investment(calculator)

        response = client.delete(f"/api/calculators/{calculator.id}", headers=advisor_headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert db_session.query(CalculatorDB).count() == 0
        assert db_session.query(InvestmentDB).count() == 0
        db_session.refresh(investor)
        assert investor.calculators_count == 0

    def test_delete_missing(self, client, advisor_headers):
        assert client.delete("/api/calculators/404", headers=advisor_headers).status_code == status.HTTP_404_NOT_FOUND
