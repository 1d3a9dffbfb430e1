from datetime import datetime, timedelta, timezone

import pytest

from lms.models.coursework import Assignment, Material, Submission
from lms.models.user import Role
from lms.routes.coursework_routes import apply_late_penalty, utcnow


def _add_assignment(db, course_id: int, due_in: timedelta, **fields) -> Assignment:
    assignment = Assignment(
        title=fields.pop('title', 'Lab 1'),
        due_date=utcnow() + due_in,
        course_id=course_id,
        **fields,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment


@pytest.mark.parametrize(
    ('grade', 'is_late', 'late_penalty', 'expected'),
    [
        (80, False, 10, 80),
        (80, True, 10, 72.0),
        (80, True, 0, 80),
        (None, True, 10, None),
        (91, True, 33.3, 60.7),
    ],
)
def test_apply_late_penalty(grade, is_late: bool, late_penalty, expected) -> None:
    assert apply_late_penalty(grade, is_late, late_penalty) == expected


def test_staff_manage_materials_and_students_read_them(db, client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    ta_headers = auth_headers(course_setup['ta'])
    student_headers = auth_headers(course_setup['student'])

    created = client.post(
        f'/materials?course_id={course_id}',
        json={'title': 'Week 1 slides', 'file_type': ' PDF ', 'file_path': '/files/week1.pdf'},
        headers=ta_headers,
    )
    assert created.status_code == 201
    assert created.json()['file_type'] == 'pdf'
    material_id = created.json()['id']

    listed = client.get(f'/materials?course_id={course_id}', headers=student_headers)
    assert listed.status_code == 200
    assert [material['title'] for material in listed.json()] == ['Week 1 slides']

    denied_update = client.put(f'/materials/{material_id}', json={'title': 'Mine now'}, headers=student_headers)
    assert denied_update.status_code == 403
    assert denied_update.json() == {'detail': 'Unauthorized: Only course staff can update materials'}

    updated = client.put(
        f'/materials/{material_id}',
        json={'title': 'Week 1 slides (revised)'},
        headers=auth_headers(course_setup['professor']),
    )
    assert updated.status_code == 200
    assert updated.json()['title'] == 'Week 1 slides (revised)'

    deleted = client.delete(f'/materials/{material_id}', headers=ta_headers)
    assert deleted.status_code == 204
    db.expire_all()
    assert db.get(Material, material_id) is None


def test_outsider_cannot_list_course_content(client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    headers = auth_headers(course_setup['outsider'])

    for path in ('/materials', '/assignments', '/quizzes', '/announcements'):
        response = client.get(f'{path}?course_id={course_id}', headers=headers)
        assert response.status_code == 403
        assert response.json() == {'detail': 'Unauthorized: You are not enrolled in this course'}


def test_staff_of_other_course_cannot_edit_content(db, client, course_setup, make_user, make_course, auth_headers) -> None:
    stranger = make_user('prof_b', Role.PROFESSOR)
    make_course(stranger, title='Other course')
    material = Material(title='Syllabus', course_id=course_setup['course_id'])
    db.add(material)
    db.commit()

    response = client.delete(f'/materials/{material.id}', headers=auth_headers(stranger))

    assert response.status_code == 403


def test_missing_items_return_not_found(client, course_setup, auth_headers) -> None:
    headers = auth_headers(course_setup['professor'])

    assert client.delete('/materials/999', headers=headers).json() == {'detail': 'Material not found'}
    assert client.delete('/quizzes/999', headers=headers).status_code == 404
    assert client.post('/submissions/999/grade', json={'grade': 1}, headers=headers).status_code == 404


def test_create_assignment_validates_fields(client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    headers = auth_headers(course_setup['professor'])
    due_date = (utcnow() + timedelta(days=3)).isoformat()

    created = client.post(
        f'/assignments?course_id={course_id}',
        json={'title': 'Essay', 'due_date': due_date, 'points_value': 50, 'allow_late': True, 'late_penalty': 10},
        headers=headers,
    )
    bad_penalty = client.post(
        f'/assignments?course_id={course_id}',
        json={'title': 'Essay', 'due_date': due_date, 'late_penalty': 150},
        headers=headers,
    )
    student_attempt = client.post(
        f'/assignments?course_id={course_id}',
        json={'title': 'Essay', 'due_date': due_date},
        headers=auth_headers(course_setup['student']),
    )

    assert created.status_code == 201
    assert created.json()['allow_late'] is True
    assert created.json()['course_id'] == course_id
    assert bad_penalty.status_code == 422
    assert student_attempt.status_code == 403


def test_list_assignments_orders_by_due_date(db, client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    _add_assignment(db, course_id, timedelta(days=5), title='Later')
    _add_assignment(db, course_id, timedelta(days=1), title='Sooner')

    response = client.get(f'/assignments?course_id={course_id}', headers=auth_headers(course_setup['student']))

    assert response.status_code == 200
    assert [assignment['title'] for assignment in response.json()] == ['Sooner', 'Later']


def test_student_submits_before_due_date(db, client, course_setup, auth_headers) -> None:
    assignment = _add_assignment(db, course_setup['course_id'], timedelta(days=1))

    response = client.post(
        f'/assignments/{assignment.id}/submissions',
        json={'content': 'My answer'},
        headers=auth_headers(course_setup['student']),
    )

    assert response.status_code == 201
    body = response.json()
    assert body['is_late'] is False
    assert body['user_id'] == course_setup['student'].id
    assert body['grade'] is None


def test_late_submission_rejected_unless_allowed(db, client, course_setup, auth_headers) -> None:
    headers = auth_headers(course_setup['student'])
    closed = _add_assignment(db, course_setup['course_id'], timedelta(hours=-1), title='Closed')
    lenient = _add_assignment(db, course_setup['course_id'], timedelta(hours=-1), title='Lenient', allow_late=True)

    rejected = client.post(f'/assignments/{closed.id}/submissions', json={'content': 'x'}, headers=headers)
    accepted = client.post(f'/assignments/{lenient.id}/submissions', json={'content': 'x'}, headers=headers)

    assert rejected.status_code == 400
    assert rejected.json() == {'detail': 'This assignment is past due and does not accept late submissions'}
    assert accepted.status_code == 201
    assert accepted.json()['is_late'] is True


def test_only_enrolled_students_submit(db, client, course_setup, auth_headers) -> None:
    assignment = _add_assignment(db, course_setup['course_id'], timedelta(days=1))

    outsider = client.post(
        f'/assignments/{assignment.id}/submissions',
        json={'content': 'x'},
        headers=auth_headers(course_setup['outsider']),
    )
    ta = client.post(
        f'/assignments/{assignment.id}/submissions',
        json={'content': 'x'},
        headers=auth_headers(course_setup['ta']),
    )

    assert outsider.status_code == 403
    assert ta.status_code == 403


def test_staff_grade_late_submission_with_penalty(db, client, course_setup, auth_headers) -> None:
    student = course_setup['student']
    assignment = _add_assignment(
        db, course_setup['course_id'], timedelta(hours=-1), allow_late=True, late_penalty=10,
    )
    submission = Submission(
        assignment_id=assignment.id,
        user_id=student.id,
        content='late work',
        submitted_at=utcnow(),
        is_late=True,
    )
    db.add(submission)
    db.commit()
    ta = course_setup['ta']

    graded = client.post(
        f'/submissions/{submission.id}/grade',
        json={'grade': 80, 'feedback': 'Good, but late'},
        headers=auth_headers(ta),
    )

    assert graded.status_code == 200
    body = graded.json()
    assert body['grade'] == 80
    assert body['adjusted_grade'] == 72.0
    assert body['graded_by'] == ta.id
    db.expire_all()
    assert db.get(Submission, submission.id).feedback == 'Good, but late'

    listed = client.get(f'/assignments/{assignment.id}/submissions', headers=auth_headers(ta))
    assert listed.status_code == 200
    assert [item['id'] for item in listed.json()] == [submission.id]


def test_grading_rejects_students_and_negative_grades(db, client, course_setup, auth_headers) -> None:
    assignment = _add_assignment(db, course_setup['course_id'], timedelta(days=1))
    submission = Submission(
        assignment_id=assignment.id,
        user_id=course_setup['student'].id,
        submitted_at=utcnow(),
    )
    db.add(submission)
    db.commit()

    self_graded = client.post(
        f'/submissions/{submission.id}/grade',
        json={'grade': 100},
        headers=auth_headers(course_setup['student']),
    )
    negative = client.post(
        f'/submissions/{submission.id}/grade',
        json={'grade': -5},
        headers=auth_headers(course_setup['professor']),
    )
    student_listing = client.get(
        f'/assignments/{assignment.id}/submissions',
        headers=auth_headers(course_setup['student']),
    )

    assert self_graded.status_code == 403
    assert negative.status_code == 400
    assert negative.json() == {'detail': 'Invalid grade value'}
    assert student_listing.status_code == 403
    db.expire_all()
    assert db.get(Submission, submission.id).grade is None


def test_create_quiz_applies_defaults(client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    before = utcnow()

    response = client.post(
        f'/quizzes?course_id={course_id}',
        json={'title': 'Quiz 1'},
        headers=auth_headers(course_setup['professor']),
    )

    assert response.status_code == 201
    body = response.json()
    assert body['time_limit'] == 60
    assert body['attempts'] == 1
    due_date = datetime.fromisoformat(body['due_date'])
    assert before + timedelta(days=7) <= due_date <= utcnow() + timedelta(days=7)


def test_update_quiz_keeps_fields_not_sent(client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    headers = auth_headers(course_setup['ta'])
    created = client.post(
        f'/quizzes?course_id={course_id}',
        json={'title': 'Quiz 1', 'time_limit': 30, 'visible_from': '2026-01-10'},
        headers=headers,
    ).json()

    updated = client.put(f"/quizzes/{created['id']}", json={'title': 'Quiz 1b', 'time_limit': 45}, headers=headers)

    assert updated.status_code == 200
    assert updated.json()['time_limit'] == 45
    assert updated.json()['due_date'] == created['due_date']
    assert updated.json()['visible_from'] == '2026-01-10'


def test_create_quiz_rejects_zero_attempts(client, course_setup, auth_headers) -> None:
    response = client.post(
        f"/quizzes?course_id={course_setup['course_id']}",
        json={'title': 'Quiz 1', 'attempts': 0},
        headers=auth_headers(course_setup['professor']),
    )

    assert response.status_code == 422


def test_announcements_record_publisher(client, course_setup, auth_headers) -> None:
    course_id = course_setup['course_id']
    ta = course_setup['ta']

    created = client.post(
        f'/announcements?course_id={course_id}',
        json={'title': 'Midterm moved', 'content': 'Now on Friday.'},
        headers=auth_headers(ta),
    )
    student_post = client.post(
        f'/announcements?course_id={course_id}',
        json={'title': 'Party'},
        headers=auth_headers(course_setup['student']),
    )
    listed = client.get(f'/announcements?course_id={course_id}', headers=auth_headers(course_setup['student']))

    assert created.status_code == 201
    assert created.json()['publisher_id'] == ta.id
    assert student_post.status_code == 403
    assert [announcement['title'] for announcement in listed.json()] == ['Midterm moved']


@pytest.mark.parametrize(
    ('path', 'body'),
    [
        ('/assignments', '{"title": "Essay", "due_date": "2030-01-01T00:00:00", "late_penalty": NaN}'),
        ('/assignments', '{"title": "Essay", "due_date": "2030-01-01T00:00:00", "points_value": Infinity}'),
        ('/quizzes', '{"title": "Quiz 1", "points_value": NaN}'),
    ],
)
def test_non_finite_numbers_are_rejected(db, client, course_setup, auth_headers, path: str, body: str) -> None:
    course_id = course_setup['course_id']
    headers = {**auth_headers(course_setup['professor']), 'Content-Type': 'application/json'}

    created = client.post(f'{path}?course_id={course_id}', content=body, headers=headers)
    listed = client.get(f'{path}?course_id={course_id}', headers=auth_headers(course_setup['student']))

    assert created.status_code == 422
    assert listed.status_code == 200
    assert listed.json() == []
    assert db.query(Assignment).count() == 0


def test_due_date_with_offset_is_stored_as_utc(db, client, course_setup, auth_headers) -> None:
    response = client.post(
        f"/assignments?course_id={course_setup['course_id']}",
        json={'title': 'Essay', 'due_date': '2030-01-01T12:00:00+02:00'},
        headers=auth_headers(course_setup['professor']),
    )

    assert response.status_code == 201
    db.expire_all()
    assert db.get(Assignment, response.json()['id']).due_date == datetime(2030, 1, 1, 10, 0)


def test_late_rule_uses_utc_for_offset_due_dates(client, course_setup, auth_headers) -> None:
    # Due ten minutes ago, expressed in a zone far from UTC.
    due_date = datetime.now(timezone(timedelta(hours=-10))) - timedelta(minutes=10)
    created = client.post(
        f"/assignments?course_id={course_setup['course_id']}",
        json={'title': 'Essay', 'due_date': due_date.isoformat()},
        headers=auth_headers(course_setup['professor']),
    ).json()

    response = client.post(
        f"/assignments/{created['id']}/submissions",
        json={'content': 'x'},
        headers=auth_headers(course_setup['student']),
    )

    assert response.status_code == 400
