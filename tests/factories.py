"""Builders for staged signup graphs and API payloads."""

from typing import Any

from onboarding.domain.models import StagedAccount, StagedClient, StagedMember, StagedProject


def make_staged_account(email: str = "owner@acme.com", **overrides: Any) -> StagedAccount:
    values: dict[str, Any] = {
        "client": StagedClient(
            company_email=email,
            company_name="Acme Builders",
            representative_name="Sam Rivera",
            title="Director",
            phone_number="+15550100",
        ),
        "project": StagedProject(name="Harbor Tower", location="Pier 4", contract_reference="HT-001"),
        "contractor": StagedMember(name="Jordan Lee", email="contractor@build.com", company="BuildCo"),
        "consultant": StagedMember(name="Alex Kim", email="consultant@plan.com", company="PlanCo"),
        "team_members": [
            StagedMember(name="Riley Park", email="riley@acme.com", position="Engineer", task="Survey"),
            StagedMember(name="No Email", email=None, position="Intern"),
        ],
    }
    values.update(overrides)
    return StagedAccount(**values)


def signup_payload(email: str = "owner@acme.com", password: str | None = "s3cret-pass") -> dict[str, Any]:
    client: dict[str, Any] = {
        "companyEmail": email,
        "companyName": "Acme Builders",
        "representativeName": "Sam Rivera",
        "title": "Director",
        "phoneNumber": "+15550100",
    }
    if password is not None:
        client["password"] = password
    return {
        "client": client,
        "project": {"name": "Harbor Tower", "location": "Pier 4", "contractReference": "HT-001"},
        "contractor": {"name": "Jordan Lee", "email": "contractor@build.com", "company": "BuildCo"},
        "consultant": {"name": "Alex Kim", "email": "", "company": "PlanCo"},
        "teamMembers": [
            {"name": "Riley Park", "email": "riley@acme.com", "position": "Engineer", "task": "Survey"},
        ],
    }
