import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.services import documents, storage
from app.services.errors import InvalidInput, NotFound, StorageFailure

PDF = b"%PDF-1.4 lecture notes"


async def upload(client, headers, filename="notes.pdf", folder_id=None, content=PDF, mime="application/pdf"):
    data = {"folder_id": folder_id} if folder_id else {}
    return await client.post(
        "/documents/upload",
        files={"file": (filename, content, mime)},
        data=data,
        headers=headers,
    )


async def make_folder(client, headers, name, parent_id=None):
    resp = await client.post("/folders", json={"name": name, "parent_id": parent_id}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.parametrize(
    ("filename", "mime", "size", "reason"),
    [
        ("", "application/pdf", 10, "filename"),
        ("a.pdf", "application/pdf", 0, "empty"),
        ("a.txt", "text/plain", 10, "mime_type"),
        ("a.txt", "application/pdf", 10, "extension"),
    ],
)
def test_validate_upload_rejects(filename, mime, size, reason):
    with pytest.raises(InvalidInput) as exc:
        documents.validate_upload(filename, mime, size)
    assert exc.value.reason == reason


def test_validate_upload_enforces_size_limit(monkeypatch):
    monkeypatch.setattr(documents.settings, "max_upload_size", 100)
    documents.validate_upload("a.pdf", "application/pdf", 100)
    with pytest.raises(InvalidInput) as exc:
        documents.validate_upload("a.pdf", "application/pdf", 101)
    assert exc.value.reason == "too_large"


def test_display_name_strips_pdf_extension():
    assert documents.display_name("Mitosis.PDF") == "Mitosis"
    assert documents.display_name("readme") == "readme"


def test_storage_rejects_keys_outside_root():
    with pytest.raises(ValueError):
        storage.blob_path("../escape.pdf")


def test_generate_key_sanitizes_filename():
    key = storage.generate_key(7, None, "my notes (1).pdf")
    user, folder, name = key.split("/")
    assert (user, folder) == ("7", "root")
    assert name.endswith("-my_notes__1_.pdf")


async def test_upload_into_folder(client, alice_headers, _storage_dir):
    folder = await make_folder(client, alice_headers, "Biology")

    resp = await upload(client, alice_headers, "Cells.pdf", folder["id"])

    assert resp.status_code == 201, resp.text
    doc = resp.json()
    assert doc["name"] == "Cells"
    assert doc["original_name"] == "Cells.pdf"
    assert doc["folder_id"] == folder["id"]
    assert doc["file_size"] == len(PDF)
    assert doc["url"].startswith("/files/")

    key = doc["url"].removeprefix("/files/")
    assert (_storage_dir / key).read_bytes() == PDF


async def test_upload_rejects_non_pdf_and_unknown_folder(client, alice_headers, _storage_dir):
    resp = await upload(client, alice_headers, "notes.txt", mime="text/plain", content=b"hello")
    assert resp.status_code == 400

    resp = await upload(client, alice_headers, "notes.pdf", folder_id=str(uuid.uuid4()))
    assert resp.status_code == 404

    resp = await upload(client, alice_headers, "notes.pdf", content=b"")
    assert resp.status_code == 400

    assert not _storage_dir.exists() or not any(p.is_file() for p in _storage_dir.rglob("*"))


async def test_list_filter_and_search(client, alice_headers, bob_headers):
    folder = await make_folder(client, alice_headers, "Biology")
    await upload(client, alice_headers, "Mitosis.pdf", folder["id"])
    await upload(client, alice_headers, "Meiosis.pdf", folder["id"])
    await upload(client, alice_headers, "Syllabus.pdf")
    await upload(client, bob_headers, "Mitosis.pdf")

    resp = await client.get("/documents", headers=alice_headers)
    assert resp.json()["total"] == 3

    resp = await client.get("/documents", params={"folder_id": folder["id"]}, headers=alice_headers)
    assert {d["name"] for d in resp.json()["documents"]} == {"Mitosis", "Meiosis"}

    resp = await client.get("/documents", params={"folder_id": "root"}, headers=alice_headers)
    assert [d["name"] for d in resp.json()["documents"]] == ["Syllabus"]

    resp = await client.get("/documents", params={"q": "mito"}, headers=alice_headers)
    assert [d["name"] for d in resp.json()["documents"]] == ["Mitosis"]


async def test_move_document(client, alice_headers, bob_headers):
    a = await make_folder(client, alice_headers, "A")
    b = await make_folder(client, alice_headers, "B")
    doc = (await upload(client, alice_headers, "x.pdf", a["id"])).json()

    resp = await client.post(f"/documents/{doc['id']}/move", json={"folder_id": b["id"]}, headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["folder_id"] == b["id"]

    resp = await client.post(f"/documents/{doc['id']}/move", json={"folder_id": None}, headers=alice_headers)
    assert resp.json()["folder_id"] is None

    resp = await client.post(
        f"/documents/{doc['id']}/move", json={"folder_id": str(uuid.uuid4())}, headers=alice_headers
    )
    assert resp.status_code == 404

    resp = await client.post(f"/documents/{doc['id']}/move", json={"folder_id": None}, headers=bob_headers)
    assert resp.status_code == 404


async def test_delete_document_removes_blob(client, alice_headers, bob_headers, _storage_dir):
    doc = (await upload(client, alice_headers, "x.pdf")).json()
    key = doc["url"].removeprefix("/files/")

    assert (await client.delete(f"/documents/{doc['id']}", headers=bob_headers)).status_code == 404
    resp = await client.delete(f"/documents/{doc['id']}", headers=alice_headers)
    assert resp.status_code == 200
    assert not (_storage_dir / key).exists()
    assert (await client.get(f"/documents/{doc['id']}", headers=alice_headers)).status_code == 404


async def test_folder_delete_removes_documents(client, alice_headers, _storage_dir):
    parent = await make_folder(client, alice_headers, "Biology")
    child = await make_folder(client, alice_headers, "Exam1", parent["id"])
    doc = (await upload(client, alice_headers, "cells.pdf", child["id"])).json()
    key = doc["url"].removeprefix("/files/")

    resp = await client.delete(f"/folders/{parent['id']}", headers=alice_headers)
    assert resp.status_code == 200

    assert (await client.get(f"/documents/{doc['id']}", headers=alice_headers)).status_code == 404
    assert not (_storage_dir / key).exists()


async def test_tree_includes_documents(client, alice_headers):
    folder = await make_folder(client, alice_headers, "Biology")
    await upload(client, alice_headers, "cells.pdf", folder["id"])
    await upload(client, alice_headers, "loose.pdf")

    body = (await client.get("/folders/tree", headers=alice_headers)).json()
    assert [d["name"] for d in body["roots"][0]["documents"]] == ["cells"]
    assert [d["name"] for d in body["root_documents"]] == ["loose"]


async def test_failed_insert_removes_stored_blob(db, user_id, _storage_dir, monkeypatch):
    async def _broken_flush(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "flush", _broken_flush)
    with pytest.raises(StorageFailure):
        await documents.upload_document(db, user_id, "x.pdf", "application/pdf", PDF)

    assert not any(p.is_file() for p in _storage_dir.rglob("*"))


async def test_get_document_of_other_user_is_not_found(db, user_id, other_user_id):
    doc = await documents.upload_document(db, other_user_id, "x.pdf", "application/pdf", PDF)
    with pytest.raises(NotFound):
        await documents.get_document(db, user_id, doc.id)


async def test_download_returns_stored_bytes(client, alice_headers, bob_headers, _storage_dir):
    doc = (await upload(client, alice_headers, "Cells.pdf")).json()

    resp = await client.get(f"/documents/{doc['id']}/file", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.content == PDF
    assert resp.headers["content-type"] == "application/pdf"
    assert "Cells.pdf" in resp.headers["content-disposition"]

    assert (await client.get(f"/documents/{doc['id']}/file", headers=bob_headers)).status_code == 404

    (_storage_dir / doc["url"].removeprefix("/files/")).unlink()
    resp = await client.get(f"/documents/{doc['id']}/file", headers=alice_headers)
    assert resp.status_code == 404
    assert resp.json()["reason"] == "blob"


async def test_update_renames_and_refiles(client, alice_headers):
    a = await make_folder(client, alice_headers, "A")
    b = await make_folder(client, alice_headers, "B")
    doc = (await upload(client, alice_headers, "x.pdf", a["id"])).json()
    url = f"/documents/{doc['id']}"

    resp = await client.patch(url, json={"name": "  Lecture 1 "}, headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "Lecture 1"
    assert resp.json()["folder_id"] == a["id"]

    resp = await client.patch(url, json={"folder_id": b["id"]}, headers=alice_headers)
    assert resp.json()["folder_id"] == b["id"]
    assert resp.json()["name"] == "Lecture 1"

    resp = await client.patch(url, json={"folder_id": None}, headers=alice_headers)
    assert resp.json()["folder_id"] is None


async def test_update_rejects_bad_input(client, alice_headers, bob_headers):
    doc = (await upload(client, alice_headers, "x.pdf")).json()
    url = f"/documents/{doc['id']}"

    resp = await client.patch(url, json={"name": "   "}, headers=alice_headers)
    assert resp.status_code == 400
    assert resp.json()["reason"] == "empty"

    resp = await client.patch(url, json={"name": "n" * 256}, headers=alice_headers)
    assert resp.json()["reason"] == "too_long"

    resp = await client.patch(url, json={"folder_id": str(uuid.uuid4())}, headers=alice_headers)
    assert resp.status_code == 404
    assert resp.json()["reason"] == "folder"

    resp = await client.patch(url, json={"name": "mine"}, headers=bob_headers)
    assert resp.status_code == 404

    resp = await client.get(url, headers=alice_headers)
    assert resp.json()["name"] == "x"


async def test_dashboard_stats(client, alice_headers, bob_headers):
    folder = await make_folder(client, alice_headers, "Biology")
    await make_folder(client, alice_headers, "Exam1", folder["id"])
    await upload(client, alice_headers, "a.pdf", folder["id"])
    await upload(client, alice_headers, "b.pdf")
    await upload(client, bob_headers, "c.pdf")

    resp = await client.get("/dashboard/stats", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json() == {"documents": 2, "folders": 2}

    resp = await client.get("/dashboard/stats", headers=bob_headers)
    assert resp.json() == {"documents": 1, "folders": 0}


async def test_recent_documents_limit(db, user_id, other_user_id):
    for i in range(12):
        await documents.upload_document(db, user_id, f"doc{i:02}.pdf", "application/pdf", PDF)
    await documents.upload_document(db, other_user_id, "theirs.pdf", "application/pdf", PDF)

    assert len(await documents.recent_documents(db, user_id)) == 5
    assert len(await documents.recent_documents(db, user_id, 0)) == 1
    assert len(await documents.recent_documents(db, user_id, 50)) == 10
    recent = await documents.recent_documents(db, user_id, 10)
    assert "theirs" not in {d.name for d in recent}
    created = [d.created_at for d in recent]
    assert created == sorted(created, reverse=True)


async def test_recent_documents_route(client, alice_headers):
    for name in ("a.pdf", "b.pdf", "c.pdf"):
        await upload(client, alice_headers, name)

    resp = await client.get("/dashboard/recent-documents", params={"limit": 2}, headers=alice_headers)
    assert resp.status_code == 200
    assert len(resp.json()["documents"]) == 2

    resp = await client.get("/dashboard/recent-documents", params={"limit": -3}, headers=alice_headers)
    assert len(resp.json()["documents"]) == 1


async def test_missing_document_body_carries_error_code(client, alice_headers):
    resp = await client.delete(f"/documents/{uuid.uuid4()}", headers=alice_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"

    resp = await upload(client, alice_headers, "notes.pdf", content=b"")
    assert resp.json()["reason"] == "empty"
