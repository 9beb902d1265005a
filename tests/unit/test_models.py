"""Tests for remote data models."""

from agavelink.core.models import FileMetaData, FileType, RemoteJobData


def test_file_metadata_from_listing_entry():
    meta = FileMetaData.from_agave(
        {
            "name": "run1",
            "path": "alice/cases/run1",
            "type": "dir",
            "length": 4096,
            "lastModified": "2017-06-01T10:00:00.000-05:00",
            "mimeType": "text/directory",
        }
    )
    assert meta.full_path == "/alice/cases/run1"
    assert meta.is_dir
    assert meta.size == 4096
    assert meta.to_dict()["type"] == "dir"


def test_file_metadata_tolerates_odd_fields():
    meta = FileMetaData.from_agave({"name": "x", "type": "symlink", "length": "n/a"})
    assert meta.type == FileType.UNKNOWN
    assert meta.size == 0
    assert meta.full_path == ""


def test_job_from_agave():
    job = RemoteJobData.from_agave(
        {
            "id": "123-007",
            "name": "openfoam-run",
            "appId": "openfoam-2.4.0u11",
            "status": "RUNNING",
            "inputs": {"inputDirectory": ["agave://store/alice/case"]},
            "parameters": "not-a-dict",
        }
    )
    assert job.job_id == "123-007"
    assert job.status == "RUNNING"
    assert job.inputs == {"inputDirectory": ["agave://store/alice/case"]}
    assert job.parameters == {}
    assert job.to_dict()["app_id"] == "openfoam-2.4.0u11"
