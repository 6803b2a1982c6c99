"""
Tests for kaizen_gate/services/report_access.py - report visibility per license.
"""
import pytest


async def _license(db, license_id):
    from kaizen_gate.models.license import License

    return await db.get(License, license_id)


class TestListReports:
    """Visibility and ordering of the report listing."""

    @pytest.mark.asyncio
    async def test_granted_reports_only(self, seeded, db_session):
        """Ungranted (FIN) and inactive (ARCH) reports are left out."""
        from kaizen_gate.services.report_access import list_reports

        listing = await list_reports(db_session, await _license(db_session, seeded.acme.license_id))

        assert [r.code for r in listing.reports] == ["SALES", "OPS"]
        assert listing.default_report_code == "SALES"

    @pytest.mark.asyncio
    async def test_allow_all_sees_every_active_report_of_its_client(self, seeded, db_session):
        from kaizen_gate.services.report_access import list_reports

        listing = await list_reports(db_session, await _license(db_session, seeded.acme_all.license_id))

        # Default first, then by name
        assert [r.code for r in listing.reports] == ["SALES", "FIN", "OPS"]

    @pytest.mark.asyncio
    async def test_default_falls_back_to_first_report(self, seeded, db_session):
        from kaizen_gate.services.report_access import list_reports

        listing = await list_reports(db_session, await _license(db_session, seeded.globx.license_id))

        assert [r.code for r in listing.reports] == ["ALPHA", "ZETA"]
        assert listing.default_report_code == "ALPHA"

    @pytest.mark.asyncio
    async def test_license_without_reports(self, seeded, db_session):
        from kaizen_gate.services.report_access import list_reports

        listing = await list_reports(db_session, await _license(db_session, seeded.revoked.license_id))

        assert listing.reports == []
        assert listing.default_report_code is None


class TestResolveCode:

    @pytest.mark.asyncio
    async def test_granted_code(self, seeded, db_session):
        from kaizen_gate.services.report_access import resolve_code

        report = await resolve_code(db_session, await _license(db_session, seeded.acme.license_id), "OPS")

        assert report.name == "Operations"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["FIN", "ARCH", "NOPE", "ALPHA", ""])
    async def test_invisible_codes_look_like_unknown_codes(self, seeded, db_session, code):
        """Ungranted, inactive, foreign and unknown codes all give the same error."""
        from kaizen_gate.core.errors import GateError
        from kaizen_gate.services.report_access import resolve_code

        license = await _license(db_session, seeded.acme.license_id)
        with pytest.raises(GateError) as exc_info:
            await resolve_code(db_session, license, code)

        assert exc_info.value.status_code == 400
        assert exc_info.value.status == "report_not_found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["HOME", "home"])
    async def test_home_alias_resolves_default(self, seeded, db_session, code):
        from kaizen_gate.services.report_access import resolve_code

        report = await resolve_code(db_session, await _license(db_session, seeded.acme.license_id), code)

        assert report.code == "SALES"

    @pytest.mark.asyncio
    async def test_home_without_default_flag(self, seeded, db_session):
        """resolve_home does not fall back to the first report."""
        from kaizen_gate.core.errors import GateError
        from kaizen_gate.services.report_access import resolve_home

        with pytest.raises(GateError) as exc_info:
            await resolve_home(db_session, await _license(db_session, seeded.globx.license_id))

        assert exc_info.value.status_code == 404
        assert exc_info.value.status == "no_default"


class TestClientLookups:

    @pytest.mark.asyncio
    async def test_find_client_license_returns_most_recent(self, seeded, db_session):
        from kaizen_gate.services.report_access import find_client_license

        license = await find_client_license(db_session, "ACME")

        assert license.id == seeded.acme_all.license_id

    @pytest.mark.asyncio
    async def test_find_client_license_unknown_prefix(self, seeded, db_session):
        from kaizen_gate.services.report_access import find_client_license

        assert await find_client_license(db_session, "NOPE") is None

    @pytest.mark.asyncio
    async def test_client_view(self, seeded, db_session):
        from kaizen_gate.services.report_access import client_view, get_client

        assert client_view(await get_client(db_session, "ACME"), "ACME") == {"prefix": "ACME", "name": "Acme Corp"}
        assert client_view(None, "ZZZ") == {"prefix": "ZZZ", "name": "ZZZ"}

    def test_report_view(self):
        from kaizen_gate.models.report import Report
        from kaizen_gate.services.report_access import report_view

        report = Report(code="SALES", name="Sales", embed_url="https://bi.example.com/s", is_default=True)

        assert report_view(report) == {
            "code": "SALES",
            "name": "Sales",
            "isDefault": True,
            "url": "https://bi.example.com/s",
        }
