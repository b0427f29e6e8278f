import io
import unittest
from unittest.mock import patch

from botocore.exceptions import ClientError

from memories.storage import InMemoryObjectStore, ObjectNotFoundError, S3ObjectStore


def _client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")


class S3ObjectStoreTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("memories.storage.boto3.client")
        self.mock_client_factory = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.mock_client_factory.return_value
        self.store = S3ObjectStore(
            bucket="memories-bucket",
            endpoint="https://storage.yandexcloud.net",
            access_key_id="ak",
            secret_access_key="sk",
            region="ru-central1",
        )

    def test_put_public_object(self):
        url = self.store.put_object("memories/a.jpg", b"img", "image/jpeg", public=True)

        self.assertEqual(url, "https://storage.yandexcloud.net/memories-bucket/memories/a.jpg")
        kwargs = self.client.put_object.call_args.kwargs
        self.assertEqual(kwargs["ACL"], "public-read")
        self.assertEqual(kwargs["ContentType"], "image/jpeg")

    def test_private_object_has_no_acl(self):
        self.store.put_object("backups/places.json", b"[]", "application/json")

        self.assertNotIn("ACL", self.client.put_object.call_args.kwargs)

    def test_get_object(self):
        self.client.get_object.return_value = {"Body": io.BytesIO(b"[]")}

        self.assertEqual(self.store.get_object("backups/places.json"), b"[]")

    def test_missing_key_raises_not_found(self):
        self.client.get_object.side_effect = _client_error("NoSuchKey")

        with self.assertRaises(ObjectNotFoundError):
            self.store.get_object("backups/places.json")

    def test_other_errors_propagate(self):
        self.client.get_object.side_effect = _client_error("AccessDenied")

        with self.assertRaises(ClientError):
            self.store.get_object("backups/places.json")

    def test_public_base_url_override(self):
        store = S3ObjectStore(
            bucket="b",
            endpoint="https://s3.example",
            access_key_id="ak",
            secret_access_key="sk",
            public_base_url="https://cdn.example/",
        )

        self.assertEqual(store.public_url("memories/a.jpg"), "https://cdn.example/memories/a.jpg")


class InMemoryObjectStoreTests(unittest.TestCase):
    def test_missing_key(self):
        with self.assertRaises(ObjectNotFoundError):
            InMemoryObjectStore().get_object("nope")


if __name__ == "__main__":
    unittest.main()
