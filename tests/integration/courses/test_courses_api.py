from academy.db import models


def test_catalog_lists_only_published(client, course_factory):
    course_factory(slug="published-course")
    course_factory(slug="draft-course", status=models.CourseStatus.DRAFT)

    resp = client.get("/courses/")
    assert resp.status_code == 200
    assert [c["slug"] for c in resp.json()] == ["published-course"]

    assert client.get("/courses/draft-course").status_code == 404


def test_course_structure_splits_modules_and_direct_lessons(client, course_factory):
    course_factory(slug="structured")
    body = client.get("/courses/structured").json()
    assert [m["title"] for m in body["modules"]] == ["Module 1"]
    assert [lesson["title"] for lesson in body["modules"][0]["lessons"]] == ["Lesson 1"]
    assert [lesson["title"] for lesson in body["direct_lessons"]] == ["Lesson 2"]


def test_enroll_requires_identity(client, course_factory):
    course_factory(slug="python")
    assert client.post("/courses/python/enroll").status_code == 401


def test_enroll_progress_and_complete_flow(client, course_factory, user_headers):
    course = course_factory(slug="python")
    first_part = course.modules[0].lessons[0].parts[0]

    resp = client.get("/courses/python/progress", headers=user_headers)
    assert resp.status_code == 403

    resp = client.post("/courses/python/enroll", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == models.EnrollmentStatus.ACTIVE

    resp = client.post(
        f"/courses/python/parts/{first_part.id}/video-progress",
        json={"watch_time": 120, "video_duration": 600, "last_position": 120},
        headers=user_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["watch_percent"] == 20

    resp = client.post(f"/courses/python/parts/{first_part.id}/complete", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["progress_percent"] == 50

    progress = client.get("/courses/python/progress", headers=user_headers).json()
    assert progress["progress_percent"] == 50
    assert progress["parts"][str(first_part.id)]["status"] == models.ProgressStatus.COMPLETED

    nxt = client.get("/courses/python/next", headers=user_headers).json()
    assert nxt["completed"] is False
    assert nxt["part"]["title"] == "Lesson 2 part 1"


def test_unknown_part_returns_404(client, course_factory, user_headers):
    import uuid

    course_factory(slug="python")
    client.post("/courses/python/enroll", headers=user_headers)
    resp = client.post(f"/courses/python/parts/{uuid.uuid4()}/complete", headers=user_headers)
    assert resp.status_code == 404


def test_unknown_certificate_returns_404(client):
    assert client.get("/certificates/ABCDEF123456").status_code == 404


def test_admin_course_builder(client, admin_headers):
    resp = client.post("/admin/courses/", json={"slug": "sql", "title": "SQL"}, headers=admin_headers)
    assert resp.status_code == 201
    course_id = resp.json()["id"]
    assert resp.json()["status"] == models.CourseStatus.DRAFT

    dup = client.post("/admin/courses/", json={"slug": "sql", "title": "SQL again"}, headers=admin_headers)
    assert dup.status_code == 409

    module = client.post(f"/admin/courses/{course_id}/modules", json={"title": "Basics"}, headers=admin_headers).json()
    lesson = client.post(
        f"/admin/courses/{course_id}/lessons",
        json={"title": "SELECT", "module_id": module["id"]},
        headers=admin_headers,
    )
    assert lesson.status_code == 201
    part = client.post(
        f"/admin/courses/lessons/{lesson.json()['id']}/parts",
        json={"title": "Intro video", "video_duration": 300},
        headers=admin_headers,
    )
    assert part.status_code == 201

    resp = client.put(f"/admin/courses/{course_id}", json={"status": "PUBLISHED"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["modules"][0]["lessons"][0]["parts"][0]["title"] == "Intro video"
    assert client.get("/courses/sql").status_code == 200


def test_admin_routes_reject_non_admins(client, user_headers):
    assert client.get("/admin/courses/", headers=user_headers).status_code == 403
    assert client.post("/admin/courses/", json={"slug": "x", "title": "X"}, headers=user_headers).status_code == 403


def test_admin_writes_blocked_for_guests(client):
    resp = client.post("/admin/courses/", json={"slug": "x", "title": "X"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Guest mode is read-only. Sign in to perform changes."


def test_course_notification_defaults_and_descriptions(client, course_factory, admin_headers):
    course = course_factory(slug="notify")
    resp = client.post(f"/admin/courses/{course.id}/notifications/defaults", headers=admin_headers)
    assert resp.status_code == 200
    descriptions = {n["template_key"]: n["trigger_description"] for n in resp.json()}
    assert descriptions["enrollment-welcome"] == "Immediately after enrollment"
    assert descriptions["inactivity-7d"] == "After 7 days of inactivity"

    bad = client.post(
        f"/admin/courses/{course.id}/notifications",
        json={"trigger_type": "WHENEVER", "template_key": "x"},
        headers=admin_headers,
    )
    assert bad.status_code == 400
