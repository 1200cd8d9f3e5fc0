from import_engine.resolver import ABSENT, MAP, STORAGE, UNKNOWN, ReferenceResolver
from services.placeholder_service import ensure_unknown_entities
from tests.factories import OrganizationFactory, PatientFactory


def _resolver(session):
    return ReferenceResolver(session, ensure_unknown_entities(session))


def test_registered_numbers_resolve_from_map(session):
    resolver = _resolver(session)
    resolver.register("organizations", 46, "org-key-46", created=True)

    resolution = resolver.resolve("organizations", "46")
    assert (resolution.key, resolution.source) == ("org-key-46", MAP)
    assert resolver.resolve("organizations", "46.0").key == "org-key-46"
    assert resolver.created_in_run("organizations", 46)
    assert not resolver.created_in_run("organizations", 47)


def test_storage_fallback_for_pre_existing_rows(session):
    """Test that rows written before the run are found in storage."""
    org = OrganizationFactory(organization_number=12)
    resolver = _resolver(session)

    resolution = resolver.resolve("organizations", 12)
    assert (resolution.key, resolution.source) == (org.id, STORAGE)
    # cached for the rest of the run
    assert resolver.resolve("organizations", 12).source == MAP


def test_unresolved_reference_falls_back_to_unknown(session):
    """Test that an unknown reference never raises and notes the fallback."""
    resolver = _resolver(session)

    resolution = resolver.resolve("projects", "999", row=7)
    assert resolution.key == resolver.unknown_keys["projects"]
    assert resolution.source == UNKNOWN
    assert resolution.is_fallback
    assert resolver.notes[0].row == 7
    assert "999" in resolver.notes[0].message


def test_blank_reference_is_absent(session):
    resolver = _resolver(session)
    resolution = resolver.resolve("projects", None)
    assert resolution.source == ABSENT
    assert resolution.key == resolver.unknown_keys["projects"]


def test_patients_resolve_by_external_id(session):
    patient = PatientFactory(external_id="MRN-0042")
    resolver = _resolver(session)

    assert resolver.resolve("patients", "MRN-0042").key == patient.id

    resolver.register_alias("patients", "mrn-new", "new-key")
    assert resolver.resolve("patients", "MRN-NEW").key == "new-key"


def test_lookup_returns_none_instead_of_unknown(session):
    resolver = _resolver(session)
    assert resolver.lookup("patients", "nobody") is None
    assert resolver.notes == []


def test_runs_do_not_share_state(session):
    first = _resolver(session)
    first.register("projects", 5, "key-5", created=True)
    second = _resolver(session)
    assert second.resolve("projects", 5).source == UNKNOWN


def test_missing_reference_queries_storage_once(session, monkeypatch):
    """Test that a reference known to be missing is not looked up again."""
    resolver = _resolver(session)
    calls = []
    from_storage = resolver._from_storage

    def counting(entity_type, number, text):
        calls.append(text)
        return from_storage(entity_type, number, text)

    monkeypatch.setattr(resolver, "_from_storage", counting)
    for row in (2, 3, 4):
        assert resolver.resolve("organizations", "404", row=row).source == UNKNOWN
    assert calls == ["404"]
    assert len(resolver.notes) == 3

    resolver.register("organizations", 404, "org-key-404", created=True)
    assert resolver.resolve("organizations", "404").key == "org-key-404"


def test_numbers_created_in_run_only_resolve_through_map(session):
    """Test that a row inserted this run is not matched by its generated number."""
    org = OrganizationFactory(organization_number=3)
    resolver = _resolver(session)
    resolver.mark_created("organizations", 3)

    assert resolver.lookup("organizations", 3) is None
    resolver.register("organizations", 3, org.id)
    assert resolver.resolve("organizations", 3).key == org.id
