from academy.services.duplicate_detection import (
    EXACT_EMAIL,
    NORMALIZED_EMAIL,
    find_duplicates_for_email,
    find_duplicates_for_import,
)


def _hits(matches):
    return [(m["email"], m["match_type"], m["match_score"]) for m in matches]


def test_exact_match_scores_100(db_session, contact_factory):
    nino = contact_factory("nino@example.com", first_name="Nino")

    matches = find_duplicates_for_email(db_session, "  Nino@Example.com ")

    assert _hits(matches) == [("nino@example.com", EXACT_EMAIL, 100)]
    assert matches[0]["id"] == nino.id
    assert matches[0]["first_name"] == "Nino"


def test_gmail_family_match_scores_90(db_session, contact_factory):
    contact_factory("johndoe@googlemail.com")
    contact_factory("johndoe@example.com")

    matches = find_duplicates_for_email(db_session, "john.doe+x@gmail.com")

    assert _hits(matches) == [("johndoe@googlemail.com", NORMALIZED_EMAIL, 90)]


def test_plus_suffix_match_on_other_domains(db_session, contact_factory):
    contact_factory("ana@example.ge")
    contact_factory("ana+promo@example.ge")
    contact_factory("a.na@example.ge")
    contact_factory("ana@other.ge")

    matches = find_duplicates_for_email(db_session, "ana+promo@example.ge")

    assert _hits(matches) == [
        ("ana+promo@example.ge", EXACT_EMAIL, 100),
        ("ana@example.ge", NORMALIZED_EMAIL, 90),
    ]


def test_already_normalized_address_only_matches_exactly(db_session, contact_factory):
    contact_factory("ana+promo@example.ge")
    assert find_duplicates_for_email(db_session, "ana@example.ge") == []


def test_import_rows_map_to_their_duplicates(db_session, contact_factory):
    contact_factory("nino@example.com")
    contact_factory("johndoe@googlemail.com")

    result = find_duplicates_for_import(db_session, [
        {"email": "new@example.com"},
        {"email": "NINO@example.com"},
        {"email": ""},
        {"email": "john.doe+x@gmail.com"},
    ])

    assert set(result) == {1, 3}
    assert _hits(result[1]) == [("nino@example.com", EXACT_EMAIL, 100)]
    assert _hits(result[3]) == [("johndoe@googlemail.com", NORMALIZED_EMAIL, 90)]


def test_import_without_emails(db_session):
    assert find_duplicates_for_import(db_session, [{"email": ""}, {}]) == {}


# API

def test_duplicate_check_endpoint(client, admin_headers, user_headers, contact_factory):
    contact_factory("johndoe@googlemail.com")

    resp = client.get("/admin/contacts/duplicates/check", params={"email": "john.doe@gmail.com"}, headers=admin_headers)

    assert resp.status_code == 200
    assert _hits(resp.json()) == [("johndoe@googlemail.com", "normalized_email", 90)]
    assert client.get("/admin/contacts/duplicates/check", params={"email": "x@y.com"}, headers=user_headers).status_code == 403


def test_import_detect_previews_duplicates(client, admin_headers, contact_factory):
    contact_factory("nino@example.com")
    csv_text = "Email,Name\nfresh@example.com,Fresh Person\nnino@example.com,Nino Beridze\n"

    body = client.post("/admin/contacts/import/detect", json={"csv": csv_text}, headers=admin_headers).json()

    assert len(body["duplicates"]) == 1
    assert body["duplicates"][0]["row"] == 2
    assert _hits(body["duplicates"][0]["matches"]) == [("nino@example.com", "exact_email", 100)]
