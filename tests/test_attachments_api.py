from pathlib import Path

import pytest

from issue_tracker.core import storage
from issue_tracker.core.settings import settings
from issue_tracker.models.attachment import Attachment


def upload(client, headers, who, ticket_id, *, name="log.txt", data=b"stack trace", content_type="text/plain"):
    return client.post(
        f"/ticket/{ticket_id}/attachments",
        files={"file": (name, data, content_type)},
        headers=headers(who),
    )


class TestUpload:
    def test_upload_list_download(self, client, headers, user, make_ticket):
        t = make_ticket(user)
        r = upload(client, headers, user, t.id)
        assert r.status_code == 201
        att = r.json()
        assert att["fileName"] == "log.txt"
        assert att["size"] == len(b"stack trace")
        assert att["uploadedByUserId"] == user.id

        listing = client.get(f"/ticket/{t.id}/attachments", headers=headers(user)).json()
        assert [a["id"] for a in listing] == [att["id"]]

        download = client.get(f"/ticket/attachment/{att['id']}", headers=headers(user))
        assert download.status_code == 200
        assert download.content == b"stack trace"

    def test_files_land_under_ticket_key(self, client, headers, db, user, make_ticket):
        t = make_ticket(user)
        att_id = upload(client, headers, user, t.id, name="shot.PNG", content_type="image/png").json()["id"]
        stored = db.get(Attachment, att_id)
        assert stored.stored_key.startswith(f"tickets/2024/01/01/{t.id}/attachments/")
        assert stored.stored_key.endswith(".png")
        assert storage.local_path(stored.stored_key).is_file()

    def test_disallowed_type_is_400(self, client, headers, user, make_ticket):
        t = make_ticket(user)
        r = upload(client, headers, user, t.id, name="run.exe", content_type="application/x-msdownload")
        assert r.status_code == 400

    def test_oversize_is_413(self, client, headers, user, make_ticket, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)
        t = make_ticket(user)
        r = upload(client, headers, user, t.id, data=b"x" * 11)
        assert r.status_code == 413

    def test_inherits_ticket_visibility(self, client, headers, user, other_user, rep, other_rep, make_ticket):
        t = make_ticket(user, assigned_to_user_id=rep.id)
        assert upload(client, headers, other_user, t.id).status_code == 403
        assert upload(client, headers, other_rep, t.id).status_code == 403
        assert client.get(f"/ticket/{t.id}/attachments", headers=headers(other_rep)).status_code == 403
        assert upload(client, headers, rep, t.id).status_code == 201

    def test_unknown_ticket_is_404(self, client, headers, user):
        assert upload(client, headers, user, 777).status_code == 404


class TestDelete:
    def test_creator_deletes_and_file_is_removed(self, client, headers, db, user, make_ticket):
        t = make_ticket(user)
        att_id = upload(client, headers, user, t.id).json()["id"]
        path = storage.local_path(db.get(Attachment, att_id).stored_key)

        assert client.delete(f"/ticket/attachment/{att_id}", headers=headers(user)).status_code == 204
        assert not path.exists()
        assert client.get(f"/ticket/attachment/{att_id}", headers=headers(user)).status_code == 404

    def test_rep_cannot_delete_creator_upload(self, client, headers, user, rep, make_ticket):
        t = make_ticket(user, assigned_to_user_id=rep.id)
        att_id = upload(client, headers, user, t.id).json()["id"]
        assert client.delete(f"/ticket/attachment/{att_id}", headers=headers(rep)).status_code == 403

    def test_ticket_delete_removes_files(self, client, headers, db, admin, user, make_ticket):
        t = make_ticket(user)
        att_id = upload(client, headers, user, t.id).json()["id"]
        path = storage.local_path(db.get(Attachment, att_id).stored_key)
        assert client.delete(f"/ticket/{t.id}", headers=headers(admin)).status_code == 204
        assert not path.exists()


def test_local_path_rejects_escape():
    with pytest.raises(ValueError):
        storage.local_path("../../etc/passwd")
    assert isinstance(storage.local_path("tickets/a.txt"), Path)


def test_object_storage_config(monkeypatch):
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "object")
    monkeypatch.setattr(settings, "OBJECT_STORAGE_ENDPOINT", "http://minio:9000")
    monkeypatch.setattr(settings, "OBJECT_STORAGE_BUCKET", " tickets ")
    cfg = storage.get_storage_config()
    assert cfg == storage.StorageConfig(endpoint_url="http://minio:9000", bucket="tickets")
