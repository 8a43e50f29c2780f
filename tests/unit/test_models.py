"""
Unit tests for the storage domain models.

These tests verify value objects and path rules without touching
any client (no SDK, no network).
"""

import pytest

from ossadapter.core.errors import InvalidArgument, ReadFailed, StorageError
from ossadapter.core.models import (
    DIRECTORY_MIMETYPE,
    BucketProfile,
    EntryType,
    ObjectMetadata,
    StorageEntry,
    UploadPolicy,
    Visibility,
    parse_endpoint,
)
from ossadapter.core.paths import PathPrefixer


# ---------------------------------------------------------------------------
# Endpoint and Profile Tests
# ---------------------------------------------------------------------------

class TestParseEndpoint:
    """The endpoint scheme decides whether URLs use https."""

    def test_https_prefix_enables_ssl(self):
        assert parse_endpoint("https://x") == ("x", True)

    def test_http_prefix_disables_ssl(self):
        assert parse_endpoint("http://x", default_ssl=True) == ("x", False)

    def test_no_prefix_keeps_default(self):
        assert parse_endpoint("x") == ("x", False)
        assert parse_endpoint("x", default_ssl=True) == ("x", True)


class TestBucketProfile:
    """Tests for BucketProfile construction and hosts."""

    def test_create_strips_scheme(self):
        profile = BucketProfile.create("ak", "sk", "https://oss-cn-beijing.aliyuncs.com", "demo")
        assert profile.endpoint == "oss-cn-beijing.aliyuncs.com"
        assert profile.use_ssl is True
        assert profile.endpoint_url == "https://oss-cn-beijing.aliyuncs.com"

    def test_host_uses_bucket_subdomain(self):
        profile = BucketProfile.create("ak", "sk", "oss-cn-beijing.aliyuncs.com", "demo")
        assert profile.host == "http://demo.oss-cn-beijing.aliyuncs.com/"

    def test_cname_host_is_the_endpoint(self):
        profile = BucketProfile.create("ak", "sk", "https://files.example.com", "demo", is_cname=True)
        assert profile.host == "https://files.example.com/"

    def test_from_mapping_accepts_camel_case_keys(self):
        profile = BucketProfile.from_mapping({
            "access_key": "ak",
            "secret_key": "sk",
            "endpoint": "https://cdn.example.com",
            "bucket": "media",
            "isCName": True,
            "cdnHost": "static.example.com",
        })
        assert profile.is_cname is True
        assert profile.cdn_host == "static.example.com"
        assert profile.use_ssl is True

    def test_empty_optional_values_become_none(self):
        profile = BucketProfile.create("ak", "sk", "x", "b", cdn_host="", region="")
        assert profile.cdn_host is None
        assert profile.region is None


# ---------------------------------------------------------------------------
# Entry and Metadata Tests
# ---------------------------------------------------------------------------

class TestStorageEntry:

    def test_directory_defaults(self):
        entry = StorageEntry(path="photos", type=EntryType.DIR)
        assert entry.is_dir
        assert not entry.is_file
        assert entry.size == 0
        assert entry.mimetype == DIRECTORY_MIMETYPE

    def test_to_dict_uses_plain_values(self):
        entry = StorageEntry(
            path="a.txt",
            type=EntryType.FILE,
            size=3,
            mimetype="text/plain",
            last_modified=1700000000,
            etag="abc",
        )
        assert entry.to_dict() == {
            "path": "a.txt",
            "type": "file",
            "size": 3,
            "mimetype": "text/plain",
            "timestamp": 1700000000,
            "etag": "abc",
        }


class TestObjectMetadata:

    def test_zero_byte_octet_stream_is_a_directory(self):
        meta = ObjectMetadata(path="d/", size=0, mimetype=DIRECTORY_MIMETYPE)
        assert meta.type is EntryType.DIR

    def test_empty_text_file_is_a_file(self):
        meta = ObjectMetadata(path="empty.txt", size=0, mimetype="text/plain")
        assert meta.type is EntryType.FILE


class TestVisibility:

    def test_acl_mapping(self):
        assert Visibility.PUBLIC.acl == "public-read"
        assert Visibility.PRIVATE.acl == "private"

    def test_parse_is_case_insensitive(self):
        assert Visibility.parse("PUBLIC") is Visibility.PUBLIC
        assert Visibility.parse(Visibility.PRIVATE) is Visibility.PRIVATE

    def test_parse_rejects_unknown_levels(self):
        with pytest.raises(InvalidArgument, match="Invalid visibility"):
            Visibility.parse("world-writable")


class TestUploadPolicy:

    def test_to_dict_uses_browser_field_names(self):
        policy = UploadPolicy(
            access_id="ak",
            host="http://demo.oss-cn-beijing.aliyuncs.com/",
            policy="cG9saWN5",
            signature="c2ln",
            expire=1700000030,
            directory="uploads/",
            callback_var={"x:user": "42"},
        )
        data = policy.to_dict()
        assert data["accessid"] == "ak"
        assert data["dir"] == "uploads/"
        assert data["callback"] is None
        assert data["callback-var"] == {"x:user": "42"}


# ---------------------------------------------------------------------------
# Error Tests
# ---------------------------------------------------------------------------

class TestErrors:

    def test_not_found_codes(self):
        assert ReadFailed("gone", code="NoSuchKey").is_not_found
        assert ReadFailed("gone", code="404").is_not_found
        assert not ReadFailed("denied", code="AccessDenied").is_not_found

    def test_invalid_argument_is_a_value_error(self):
        error = InvalidArgument("bad", path="x")
        assert isinstance(error, ValueError)
        assert isinstance(error, StorageError)
        assert error.path == "x"


# ---------------------------------------------------------------------------
# Path Prefixer Tests
# ---------------------------------------------------------------------------

class TestPathPrefixer:
    """Tests for root prefix normalization."""

    @pytest.mark.parametrize("root", ["uploads", "/uploads", "uploads/", "//uploads//"])
    def test_prefix_is_normalized(self, root):
        assert PathPrefixer(root).prefix == "uploads/"

    def test_empty_prefix_means_none(self):
        prefixer = PathPrefixer("")
        assert prefixer.prefix == ""
        assert prefixer.apply("/a/b.png") == "a/b.png"

    @pytest.mark.parametrize("path", ["a.txt", "a/b/c.png", "", "dir/"])
    def test_strip_reverses_apply(self, path):
        prefixer = PathPrefixer("root/sub")
        assert prefixer.strip(prefixer.apply(path)) == path

    def test_apply_removes_leading_slashes(self):
        assert PathPrefixer("root").apply("///a.txt") == "root/a.txt"

    def test_apply_directory_adds_one_trailing_slash(self):
        prefixer = PathPrefixer("root")
        assert prefixer.apply_directory("photos") == "root/photos/"
        assert prefixer.apply_directory("photos//") == "root/photos/"
        assert prefixer.apply_directory("") == "root/"

    def test_bucket_root_directory_is_empty(self):
        assert PathPrefixer().apply_directory("") == ""
        assert PathPrefixer().apply_directory("/") == ""

    def test_strip_directory_drops_trailing_slash(self):
        prefixer = PathPrefixer("root")
        assert prefixer.strip_directory("root/photos/") == "photos"
