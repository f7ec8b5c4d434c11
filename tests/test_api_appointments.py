"""Tests for appointment and document endpoints."""

from datetime import date, timedelta

import pytest

from saludlibre import config

NEXT_WEEK = (date.today() + timedelta(days=7)).isoformat()


@pytest.fixture
def appointment(client, doctor, patient):
    resp = client.post("/appointments/", headers=patient["headers"], json={
        "doctor_id": doctor["id"], "date": NEXT_WEEK, "time": "10:00", "reason": "Control anual",
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def recipients(smtp):
    server = smtp.return_value.__enter__.return_value
    return [c.args[1] for c in server.sendmail.call_args_list]


class TestBooking:
    """Patients request, doctors schedule."""

    def test_patient_request_is_pending(self, appointment, smtp):
        assert appointment["status"] == "pending"
        assert appointment["status_label"] == "Pendiente"
        assert appointment["status_color"] == "yellow"
        assert ["laura.perez@gmail.com"] in recipients(smtp)

    def test_doctor_schedule_is_confirmed(self, client, doctor, patient):
        resp = client.post("/appointments/", headers=doctor["headers"], json={
            "patient_id": patient["id"], "date": NEXT_WEEK, "time": "11:00",
        })
        assert resp.status_code == 201
        assert resp.json()["status"] == "confirmed"

    def test_slot_taken(self, client, doctor, patient, appointment):
        resp = client.post("/appointments/", headers=patient["headers"], json={
            "doctor_id": doctor["id"], "date": NEXT_WEEK, "time": "10:00",
        })
        assert resp.status_code == 409

    def test_past_date_rejected(self, client, doctor, patient):
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        resp = client.post("/appointments/", headers=patient["headers"], json={
            "doctor_id": doctor["id"], "date": yesterday, "time": "10:00",
        })
        assert resp.status_code == 400

    def test_outside_agenda_rejected(self, client, doctor, patient):
        resp = client.post("/appointments/", headers=patient["headers"], json={
            "doctor_id": doctor["id"], "date": NEXT_WEEK, "time": "21:00",
        })
        assert resp.status_code == 400

    def test_malformed_time(self, client, doctor, patient):
        resp = client.post("/appointments/", headers=patient["headers"], json={
            "doctor_id": doctor["id"], "date": NEXT_WEEK, "time": "10am",
        })
        assert resp.status_code == 422

    def test_unknown_doctor(self, client, patient):
        resp = client.post("/appointments/", headers=patient["headers"], json={
            "doctor_id": 999, "date": NEXT_WEEK, "time": "10:00",
        })
        assert resp.status_code == 404


class TestStatus:
    """Status changes and listing."""

    def test_confirm_sends_email(self, client, doctor, appointment, smtp):
        resp = client.patch(f"/appointments/{appointment['appointment_id']}/status", headers=doctor["headers"],
                            json={"status": "confirmed"})
        assert resp.status_code == 200
        assert resp.json()["status_label"] == "Confirmada"
        assert ["juan.gomez@gmail.com"] in recipients(smtp)

    def test_invalid_transition(self, client, doctor, appointment):
        resp = client.patch(f"/appointments/{appointment['appointment_id']}/status", headers=doctor["headers"],
                            json={"status": "completed"})
        assert resp.status_code == 409

    def test_unknown_status(self, client, doctor, appointment):
        resp = client.patch(f"/appointments/{appointment['appointment_id']}/status", headers=doctor["headers"],
                            json={"status": "rescheduled"})
        assert resp.status_code == 422

    def test_patient_can_cancel(self, client, patient, appointment):
        resp = client.patch(f"/appointments/{appointment['appointment_id']}/status", headers=patient["headers"],
                            json={"status": "cancelled"})
        assert resp.json()["status"] == "cancelled"

    def test_patient_cannot_confirm(self, client, patient, appointment):
        resp = client.patch(f"/appointments/{appointment['appointment_id']}/status", headers=patient["headers"],
                            json={"status": "confirmed"})
        assert resp.status_code == 403

    def test_list_by_status(self, client, doctor, patient, appointment):
        pending = client.get("/appointments/", headers=doctor["headers"], params={"status": "pending"}).json()
        confirmed = client.get("/appointments/", headers=doctor["headers"], params={"status": "confirmed"}).json()
        assert len(pending) == 1
        assert confirmed == []
        assert len(client.get("/appointments/", headers=patient["headers"]).json()) == 1

    def test_delete(self, client, doctor, appointment):
        appt_id = appointment["appointment_id"]
        assert client.delete(f"/appointments/{appt_id}", headers=doctor["headers"]).status_code == 204
        assert client.get(f"/appointments/{appt_id}", headers=doctor["headers"]).status_code == 404


class TestDocuments:
    """Uploads on patients and appointments."""

    def test_upload_and_download(self, client, patient, appointment):
        resp = client.post(
            f"/appointments/{appointment['appointment_id']}/documents",
            headers=patient["headers"],
            files={"file": ("analisis.pdf", b"%PDF-1.4 resultados", "application/pdf")},
            data={"title": "Análisis de sangre"},
        )
        assert resp.status_code == 201, resp.text
        doc = resp.json()
        assert doc["uploaded_by"] == "patient"
        assert doc["size_label"] == "19 Bytes"
        assert doc["storage_path"].startswith(f"appointment-documents/{appointment['appointment_id']}/")

        download = client.get(f"/documents/{doc['document_id']}", headers=patient["headers"])
        assert download.content == b"%PDF-1.4 resultados"
        assert download.headers["content-type"] == "application/pdf"
        assert download.headers["content-disposition"].startswith("attachment")

    def test_doctor_sees_appointment_documents(self, client, doctor, patient, appointment):
        client.post(
            f"/appointments/{appointment['appointment_id']}/documents",
            headers=patient["headers"],
            files={"file": ("nota.txt", b"dolor de cabeza", "text/plain")},
        )
        docs = client.get(f"/appointments/{appointment['appointment_id']}/documents", headers=doctor["headers"]).json()
        assert [d["title"] for d in docs] == ["nota.txt"]

    def test_disallowed_type(self, client, patient):
        resp = client.post(
            f"/patients/{patient['id']}/documents",
            headers=patient["headers"],
            files={"file": ("script.exe", b"MZ", "application/octet-stream")},
        )
        assert resp.status_code == 400

    def test_too_large(self, client, patient):
        big = b"0" * (config.MAX_UPLOAD_BYTES + 1)
        resp = client.post(
            f"/patients/{patient['id']}/documents",
            headers=patient["headers"],
            files={"file": ("grande.pdf", big, "application/pdf")},
        )
        assert resp.status_code == 413

    def test_rename_and_delete_own_upload(self, client, doctor, patient):
        doc = client.post(
            f"/patients/{patient['id']}/documents",
            headers=doctor["headers"],
            files={"file": ("estudio.png", b"\x89PNG", "image/png")},
        ).json()
        resp = client.patch(f"/documents/{doc['document_id']}", headers=doctor["headers"], json={"title": "Eco"})
        assert resp.json()["title"] == "Eco"
        # only the uploader's side may modify it
        resp = client.delete(f"/documents/{doc['document_id']}", headers=patient["headers"])
        assert resp.status_code == 403
        resp = client.delete(f"/documents/{doc['document_id']}", headers=doctor["headers"])
        assert resp.status_code == 204
        assert client.get(f"/patients/{patient['id']}/documents", headers=patient["headers"]).json() == []

    def test_other_patient_cannot_download(self, client, doctor, patient):
        doc = client.post(
            f"/patients/{patient['id']}/documents",
            headers=patient["headers"],
            files={"file": ("nota.txt", b"privado", "text/plain")},
        ).json()
        other = client.post("/patients/", headers=doctor["headers"], json={
            "full_name": "Ana Paz", "email": "ana.paz@gmail.com",
        }).json()
        resp = client.post("/auth/login", json={"email": "ana.paz@gmail.com", "password": other["temporary_password"]})
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        assert client.get(f"/documents/{doc['document_id']}", headers=headers).status_code == 404


@pytest.fixture
def completed(client, doctor, patient):
    resp = client.post("/appointments/", headers=doctor["headers"], json={
        "patient_id": patient["id"], "date": NEXT_WEEK, "time": "15:00",
    })
    appointment_id = resp.json()["appointment_id"]
    resp = client.patch(f"/appointments/{appointment_id}/status", headers=doctor["headers"],
                        json={"status": "completed"})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestReviews:
    """Patients rate completed appointments; the directory shows the average."""

    def test_review_completed_appointment(self, client, doctor, patient, completed):
        url = f"/appointments/{completed['appointment_id']}"
        assert client.get(f"{url}/can-review", headers=patient["headers"]).json() == {"can_review": True}
        resp = client.post(f"{url}/review", headers=patient["headers"], json={
            "rating": 4,
            "comment": "  Muy atenta  ",
            "wouldRecommend": False,
            "aspects": {"punctuality": 3, "attention": 5},
        })
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["doctor_id"] == doctor["id"]
        assert body["comment"] == "Muy atenta"
        assert body["would_recommend"] is False
        assert body["aspects"] == {"punctuality": 3, "attention": 5, "explanation": 0, "facilities": 0}
        assert client.get(f"{url}/can-review", headers=patient["headers"]).json() == {"can_review": False}

    def test_second_review_conflicts(self, client, patient, completed):
        url = f"/appointments/{completed['appointment_id']}/review"
        assert client.post(url, headers=patient["headers"], json={"rating": 5}).status_code == 201
        assert client.post(url, headers=patient["headers"], json={"rating": 1}).status_code == 409

    def test_pending_appointment_cannot_be_reviewed(self, client, patient, appointment):
        resp = client.post(f"/appointments/{appointment['appointment_id']}/review", headers=patient["headers"],
                           json={"rating": 5})
        assert resp.status_code == 400

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, client, patient, completed, rating):
        resp = client.post(f"/appointments/{completed['appointment_id']}/review", headers=patient["headers"],
                           json={"rating": rating})
        assert resp.status_code == 422

    def test_doctor_cannot_review(self, client, doctor, completed):
        resp = client.post(f"/appointments/{completed['appointment_id']}/review", headers=doctor["headers"],
                           json={"rating": 5})
        assert resp.status_code == 403

    def test_reviewable_list(self, client, patient, completed):
        listed = client.get("/appointments/reviewable", headers=patient["headers"]).json()
        assert [a["appointment_id"] for a in listed] == [completed["appointment_id"]]
        client.post(f"/appointments/{completed['appointment_id']}/review", headers=patient["headers"],
                    json={"rating": 5})
        assert client.get("/appointments/reviewable", headers=patient["headers"]).json() == []
        mine = client.get("/patients/me/reviews", headers=patient["headers"]).json()
        assert [r["appointment_id"] for r in mine] == [completed["appointment_id"]]

    def test_rating_in_directory_and_reviews_page(self, client, doctor, patient, completed):
        client.post(f"/appointments/{completed['appointment_id']}/review", headers=patient["headers"],
                    json={"rating": 4, "aspects": {"facilities": 4}})
        listed = client.get("/doctors/").json()
        assert listed[0]["average_rating"] == 4.0
        assert listed[0]["total_reviews"] == 1
        assert client.get(f"/doctors/{doctor['id']}").json()["average_rating"] == 4.0
        page = client.get(f"/doctors/{doctor['id']}/reviews").json()
        assert page["summary"]["total_reviews"] == 1
        assert page["summary"]["aspect_averages"]["facilities"] == 4.0
        assert [r["rating"] for r in page["reviews"]] == [4]

    def test_unrated_doctor(self, client, doctor):
        body = client.get(f"/doctors/{doctor['id']}").json()
        assert body["average_rating"] == 0.0
        assert body["total_reviews"] == 0
        assert client.get("/doctors/999/reviews").status_code == 404
