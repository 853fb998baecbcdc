"""
Unit Tests for S3 Storage Cleanup
Tests for: prefix deletion, batching, safety checks
"""
import pytest

from arcod.core.aws import S3Service, job_prefix


class TestDeletePrefix:
    """Test removing a job's files"""

    def test_job_prefix(self):
        assert job_prefix("job-1") == "downloads/job-1/"

    def test_deletes_only_the_prefix(self, put_blobs, list_blobs):
        put_blobs("job-1", 3)
        put_blobs("job-10", 2)

        deleted = S3Service().delete_prefix(job_prefix("job-1"))

        assert deleted == 3
        assert list_blobs() == ["downloads/job-10/file-0.flac", "downloads/job-10/file-1.flac"]

    def test_empty_prefix_is_a_no_op(self, s3):
        assert S3Service().delete_prefix("downloads/nothing-here/") == 0

    def test_second_delete_finds_nothing(self, put_blobs):
        put_blobs("job-1", 1)
        service = S3Service()

        assert service.delete_prefix("downloads/job-1/") == 1
        assert service.delete_prefix("downloads/job-1/") == 0

    @pytest.mark.parametrize("prefix", ["", "downloads/job-1", "downloads"])
    def test_refuses_non_folder_prefix(self, s3, prefix):
        with pytest.raises(ValueError):
            S3Service().delete_prefix(prefix)

    def test_large_prefix_is_deleted_in_batches(self, s3, list_blobs):
        keys = [f"downloads/big/part-{i:04d}" for i in range(1005)]
        for key in keys:
            s3.put_object(Bucket="arcod-test-downloads", Key=key, Body=b"")

        assert S3Service().delete_prefix("downloads/big/") == 1005
        assert list_blobs("downloads/big/") == []
