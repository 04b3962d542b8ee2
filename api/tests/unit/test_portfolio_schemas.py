"""
Tests unitarios para los schemas de registros crudos (parse en el borde).
"""
from __future__ import annotations

import pytest

from app.infrastructure.external.portfolio_sync.schemas import (
    ClientRow,
    FestivalRow,
    JournalRow,
    ProjectRow,
    SettingsRow,
    parse_row,
)
from app.infrastructure.external.portfolio_sync.types import AirtableRecord
from app.shared.exceptions.sync import RecordValidationError


def _record(**fields) -> AirtableRecord:
    return AirtableRecord(record_id="rec1", fields=fields)


class TestProjectRow:
    """Tests para ProjectRow."""

    def test_scalar_lookups_become_lists(self) -> None:
        """Verifica que Role/Kind escalares se normalizan a lista."""
        row = parse_row(ProjectRow, _record(Name="X", Role="Director", Kind="Short Film"), "Projects")

        assert row.role == ["Director"]
        assert row.kind == ["Short Film"]

    def test_raw_type_falls_back_to_kind(self) -> None:
        """Verifica que sin 'Project Type' se usa el primer 'Kind'."""
        row = parse_row(ProjectRow, _record(Kind=["Music Video"]), "Projects")

        assert row.raw_type == "Music Video"

    def test_feature_is_truthy(self) -> None:
        """Verifica que 'Feature' acepta valores truthy de Airtable."""
        assert parse_row(ProjectRow, _record(Feature=1), "Projects").feature is True
        assert parse_row(ProjectRow, _record(), "Projects").feature is False

    def test_gallery_attachments_are_parsed(self) -> None:
        """Verifica el parseo de adjuntos con id estable."""
        row = parse_row(
            ProjectRow,
            _record(Gallery=[{"id": "att1", "url": "https://dl.airtable.com/a.jpg", "filename": "a.jpg", "size": 10}]),
            "Projects",
        )

        assert row.gallery[0].id == "att1"
        assert row.gallery[0].size == 10

    def test_attachment_without_url_is_invalid(self) -> None:
        """Verifica que un adjunto sin url produce RecordValidationError."""
        with pytest.raises(RecordValidationError) as exc_info:
            parse_row(ProjectRow, _record(Gallery=[{"id": "att1"}]), "Projects")

        assert exc_info.value.table == "Projects"
        assert exc_info.value.record_id == "rec1"
        assert exc_info.value.status_code == 422


class TestJournalRow:
    """Tests para JournalRow."""

    def test_status_defaults_to_draft(self) -> None:
        assert parse_row(JournalRow, _record(Title="Hola"), "Journal").status == "Draft"

    def test_tags_string_becomes_list(self) -> None:
        assert parse_row(JournalRow, _record(Tags="news"), "Journal").tags == ["news"]


class TestSettingsRow:
    """Tests para SettingsRow."""

    def test_allowed_roles_from_comma_text(self) -> None:
        """Verifica que 'Allowed Roles' acepta texto separado por comas."""
        row = parse_row(SettingsRow, _record(**{"Allowed Roles": "Director, Editor"}), "Settings")

        assert row.allowed_roles == ["Director", "Editor"]

    def test_allowed_roles_from_multiselect(self) -> None:
        row = parse_row(SettingsRow, _record(**{"Allowed Roles": ["Director"]}), "Settings")

        assert row.allowed_roles == ["Director"]


class TestLookupRows:
    """Tests para FestivalRow / ClientRow."""

    def test_festival_label_fallbacks(self) -> None:
        assert parse_row(FestivalRow, _record(Name="Cannes"), "Festivals").label == "Cannes"
        assert parse_row(FestivalRow, _record(), "Festivals").label == "Unknown Award"

    def test_client_label_prefers_company(self) -> None:
        row = parse_row(ClientRow, _record(Company="ACME", Client="Bob"), "Client Book")

        assert row.label == "ACME"
