"""
Tests for CSV seeding
"""

from app.models.agency import Agency
from app.models.contact import Contact
from app.services.seed_service import SeedService, parse_population, read_csv_rows, null_or_value


class TestHelpers:
    def test_null_or_value(self):
        assert null_or_value(None) is None
        assert null_or_value("   ") is None
        assert null_or_value(" IL ") == "IL"

    def test_parse_population(self):
        assert parse_population("1,234") == 1234
        assert parse_population("975000.0") == 975000
        assert parse_population("") is None
        assert parse_population("unknown") is None

    def test_read_csv_rows(self, tmp_path):
        path = tmp_path / "agencies.csv"
        path.write_text("id,name\na1,Springfield PD\n,\n", encoding="utf-8")

        assert read_csv_rows(str(path)) == [{"id": "a1", "name": "Springfield PD"}]

    def test_read_missing_csv(self, tmp_path):
        assert read_csv_rows(str(tmp_path / "missing.csv")) == []


class TestSeedService:
    def test_seed_agencies_upserts(self, db_session):
        service = SeedService()
        rows = [
            {"id": "a1", "name": "Springfield PD", "state_code": "il", "population": "116,000"},
            {"id": "", "name": "No id"},
        ]

        assert service.seed_agencies(db_session, rows) == 1
        assert service.seed_agencies(db_session, [{"id": "a1", "name": "Springfield Police"}]) == 1

        agencies = db_session.query(Agency).all()
        assert len(agencies) == 1
        assert agencies[0].name == "Springfield Police"

    def test_seed_agencies_normalizes_values(self, db_session):
        SeedService().seed_agencies(db_session, [
            {"id": "a1", "name": " Springfield PD ", "state_code": "il", "population": "116,000", "website": ""},
        ])

        agency = db_session.query(Agency).filter(Agency.id == "a1").first()
        assert agency.name == "Springfield PD"
        assert agency.state_code == "IL"
        assert agency.population == 116000
        assert agency.website is None

    def test_seed_contacts_resolves_agency(self, db_session):
        service = SeedService()
        service.seed_agencies(db_session, [{"id": "a1", "name": "Springfield PD"}])

        inserted, skipped = service.seed_contacts(db_session, [
            {"id": "c1", "first_name": "Ann", "agency_id": "a1", "agency_name": "Stale name"},
            {"id": "c2", "first_name": "Bob", "agency_id": "unknown"},
            {"id": "", "first_name": "Nobody"},
        ])

        assert (inserted, skipped) == (2, 1)
        c1 = db_session.query(Contact).filter(Contact.id == "c1").first()
        c2 = db_session.query(Contact).filter(Contact.id == "c2").first()
        assert c1.agency_id == "a1"
        assert c1.agency_name == "Springfield PD"
        assert c2.agency_id is None
        assert c2.agency_name is None
