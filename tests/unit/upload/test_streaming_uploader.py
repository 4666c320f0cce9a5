import hashlib

import pytest

from b2client.core.exceptions import (
    IncompleteUploadError,
    InternalError,
    InvalidArgumentError,
    LeaseExpiredError,
    ServiceUnavailableError,
)
from b2client.upload.encryption import ServerSideEncryption
from b2client.upload.models import LargeFileState
from b2client.upload.streaming_uploader import (
    LargeFileStreamUploader,
    iter_part_buffers,
)

PART_SIZE = 100


def _chunks(data, size):
    for offset in range(0, len(data), size):
        yield data[offset : offset + size]


def _data(length):
    return bytes(i % 251 for i in range(length))


@pytest.fixture
def streamer(client, fake_b2):
    return LargeFileStreamUploader(client.large_file, PART_SIZE, threads=3)


def test_iter_part_buffers_regroups_chunks():
    data = _data(350)

    buffers = list(iter_part_buffers(_chunks(data, 33), PART_SIZE))

    assert [len(b) for b in buffers] == [100, 100, 100, 50]
    assert b"".join(b.getvalue() for b in buffers) == data
    assert buffers[1].hexdigest() == hashlib.sha1(data[100:200]).hexdigest()


def test_iter_part_buffers_splits_large_chunks():
    buffers = list(iter_part_buffers([_data(250)], PART_SIZE))

    assert [len(b) for b in buffers] == [100, 100, 50]


def test_iter_part_buffers_empty_stream():
    assert list(iter_part_buffers([], PART_SIZE)) == []
    assert list(iter_part_buffers([b"", b""], PART_SIZE)) == []


def test_iter_part_buffers_rejects_bad_part_size():
    with pytest.raises(InvalidArgumentError):
        list(iter_part_buffers([b"abc"], 0))


def test_threads_must_be_positive(client):
    with pytest.raises(InvalidArgumentError):
        LargeFileStreamUploader(client.large_file, PART_SIZE, threads=0)


def test_upload_stream_in_parts(fake_b2, streamer):
    data = _data(1050)

    file = streamer.upload("bucket-1", "stream.bin", _chunks(data, 64), size=len(data))

    assert file.content_length == 1050
    assert fake_b2.finished[file.file_id] == data
    assert streamer.session.state is LargeFileState.FINISHED
    assert sorted(streamer.session.parts) == list(range(1, 12))
    assert streamer.session.parts[11].content_length == 50
    assert fake_b2.count("b2_upload_part") == 11
    assert fake_b2.max_in_flight <= 3


def test_each_worker_leases_its_own_url(fake_b2, streamer):
    streamer.upload("bucket-1", "stream.bin", _chunks(_data(2000), 100))

    assert 1 <= fake_b2.count("b2_get_upload_part_url") <= 3


def test_progress_reports_every_byte(fake_b2, client):
    progress = []
    streamer = LargeFileStreamUploader(
        client.large_file, PART_SIZE, threads=2, progress_callback=progress.append
    )

    streamer.upload("bucket-1", "stream.bin", [_data(430)])

    assert sorted(progress) == [30, 100, 100, 100, 100]


def test_expired_lease_is_replaced_once(fake_b2, streamer):
    data = _data(500)
    fake_b2.fail_part(3, 401, "expired_auth_token")

    file = streamer.upload("bucket-1", "stream.bin", [data])

    assert fake_b2.finished[file.file_id] == data
    assert fake_b2.count("b2_upload_part") == 6
    assert fake_b2.count("b2_authorize_account") == 1


def test_second_lease_expiry_on_same_part_fails_upload(fake_b2, streamer):
    fake_b2.fail_part(2, 401, "expired_auth_token")
    fake_b2.fail_part(2, 401, "bad_auth_token")

    with pytest.raises(LeaseExpiredError):
        streamer.upload("bucket-1", "stream.bin", [_data(500)])

    assert streamer.session.is_open
    assert 2 not in streamer.session.parts
    assert fake_b2.count("b2_finish_large_file") == 0


def test_failed_part_leaves_file_resumable(fake_b2, client, streamer):
    data = _data(500)
    fake_b2.fail_part(4, 500, "internal_error")

    with pytest.raises(InternalError):
        streamer.upload("bucket-1", "stream.bin", [data])

    file_id = streamer.session.file_id
    assert fake_b2.files[file_id].state == "open"
    stored = set(fake_b2.files[file_id].parts)
    assert 4 not in stored
    uploaded_before = fake_b2.count("b2_upload_part")

    resumer = LargeFileStreamUploader(client.large_file, PART_SIZE, threads=2)
    file = resumer.resume(file_id, _chunks(data, 77), size=len(data))

    assert fake_b2.finished[file.file_id] == data
    assert fake_b2.count("b2_upload_part") - uploaded_before == 5 - len(stored)


def test_resume_skips_matching_parts_and_replaces_changed_ones(fake_b2, client):
    data = _data(500)
    uploader = client.large_file
    session = uploader.start("bucket-1", "stream.bin")
    target = uploader.lease_part(session)
    uploader.upload_part(target, 1, data[:100])
    uploader.upload_part(target, 2, b"\xff" * 100)
    before = fake_b2.count("b2_upload_part")
    progress = []

    resumer = LargeFileStreamUploader(
        uploader, PART_SIZE, threads=2, progress_callback=progress.append
    )
    file = resumer.resume(session.file_id, [data], size=len(data))

    assert fake_b2.finished[file.file_id] == data
    assert fake_b2.count("b2_upload_part") - before == 4
    assert sum(progress) == len(data)


def test_every_streamed_part_is_encrypted(fake_b2, streamer):
    encryption = ServerSideEncryption.sse_c(bytes(range(32)))

    streamer.upload("bucket-1", "stream.bin", [_data(250)], encryption=encryption)

    assert sorted(fake_b2.part_encryption) == [1, 2, 3]
    for headers in fake_b2.part_encryption.values():
        assert headers == encryption.to_headers()
    assert streamer.session.encryption == encryption


def test_resume_sends_given_encryption(fake_b2, client):
    data = _data(300)
    encryption = ServerSideEncryption.sse_c(bytes(range(32)))
    uploader = client.large_file
    session = uploader.start("bucket-1", "stream.bin", encryption=encryption)
    uploader.upload_part(uploader.lease_part(session), 1, data[:100], session=session)

    resumer = LargeFileStreamUploader(uploader, PART_SIZE)
    resumer.resume(session.file_id, [data], size=len(data), encryption=encryption)

    assert fake_b2.part_encryption[3] == encryption.to_headers()
    assert fake_b2.finished[session.file_id] == data


def test_resume_with_extra_remote_parts_is_incomplete(fake_b2, client):
    uploader = client.large_file
    session = uploader.start("bucket-1", "stream.bin")
    target = uploader.lease_part(session)
    for number in (1, 2, 3):
        uploader.upload_part(target, number, _data(100))

    resumer = LargeFileStreamUploader(uploader, PART_SIZE)
    with pytest.raises(IncompleteUploadError):
        resumer.resume(session.file_id, [_data(150)])

    assert fake_b2.count("b2_finish_large_file") == 0


def test_size_mismatch_is_rejected_before_finish(fake_b2, streamer):
    with pytest.raises(InvalidArgumentError):
        streamer.upload("bucket-1", "stream.bin", [_data(300)], size=400)

    assert fake_b2.count("b2_finish_large_file") == 0
    assert streamer.session.is_open


def test_cancel_on_failure(fake_b2, client):
    fake_b2.fail_part(2, 503, "service_unavailable")
    streamer = LargeFileStreamUploader(
        client.large_file, PART_SIZE, threads=1, cancel_on_failure=True
    )

    with pytest.raises(ServiceUnavailableError):
        streamer.upload("bucket-1", "stream.bin", [_data(500)])

    assert streamer.session.state is LargeFileState.CANCELED
    assert fake_b2.files[streamer.session.file_id].state == "canceled"


def test_empty_stream_cannot_be_finished(fake_b2, streamer):
    with pytest.raises(IncompleteUploadError):
        streamer.upload("bucket-1", "empty.bin", [])

    assert fake_b2.count("b2_upload_part") == 0
