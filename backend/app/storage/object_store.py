import logging
from typing import Optional
from urllib.parse import quote
import httpx
from app.core.config import settings
from app.core.errors import FileStorageError

logger = logging.getLogger(__name__)

BODY_EXCERPT_LIMIT = 300
FOLDER_PLACEHOLDER = ".gitkeep"


def _excerpt(response: httpx.Response) -> str:
    try:
        text = response.text
    except Exception:
        return ""
    return text[:BODY_EXCERPT_LIMIT]


class ObjectStoreClient:
    """
    Client for a path-addressed HTTP object store (Supabase Storage layout).

    Every call authenticates with the service key as a bearer token and is
    single-shot: a non-2xx answer, a timeout or a transport error becomes a
    FileStorageError. The client keeps no state besides the HTTP connection pool.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {service_key}"},
            timeout=timeout,
            transport=transport,
        )

    def _object_path(self, storage_path: str) -> str:
        return f"/storage/v1/object/{self.bucket}/{quote(storage_path, safe='/@')}"

    def _send(self, method: str, url: str, action: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Object store {action} timed out: {url}")
            raise FileStorageError(f"Object store {action} timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Object store {action} failed: {url}: {e}")
            raise FileStorageError(f"Object store {action} failed") from e

        if not response.is_success:
            excerpt = _excerpt(response)
            logger.error(
                f"Object store {action} failed with status {response.status_code}: {excerpt}")
            raise FileStorageError(
                f"Object store {action} failed",
                http_status=response.status_code,
                body_excerpt=excerpt,
            )
        return response

    def upload(self, storage_path: str, content_type: str, data: bytes) -> str:
        """Store bytes under storage_path and return the public URL"""
        logger.info(f"Uploading object: {storage_path}")
        self._send(
            "POST",
            self._object_path(storage_path),
            "upload",
            content=data,
            headers={"Content-Type": content_type},
        )
        return self.public_url(storage_path)

    def delete(self, storage_path: str) -> None:
        logger.info(f"Deleting object: {storage_path}")
        self._send("DELETE", self._object_path(storage_path), "delete")

    def exists(self, storage_path: str) -> bool:
        """HEAD the object; a 4xx answer means absent, other failures raise"""
        url = f"/storage/v1/object/info/public/{self.bucket}/{quote(storage_path, safe='/@')}"
        try:
            response = self._client.head(url)
        except httpx.HTTPError as e:
            logger.error(f"Object store existence check failed: {url}: {e}")
            raise FileStorageError("Object store existence check failed") from e

        if response.is_success:
            return True
        if 400 <= response.status_code < 500:
            return False
        raise FileStorageError(
            "Object store existence check failed",
            http_status=response.status_code,
            body_excerpt=_excerpt(response),
        )

    def public_url(self, storage_path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{storage_path}"

    def create_user_folder(self, email: str) -> None:
        """Materialise the "{email}/" prefix with a placeholder object"""
        logger.info(f"Creating user folder for: {email}")
        self._send(
            "POST",
            self._object_path(f"{email}/{FOLDER_PLACEHOLDER}"),
            "folder creation",
            content=b"# User folder placeholder",
            headers={"Content-Type": "text/plain"},
        )

    def close(self) -> None:
        self._client.close()


object_store = ObjectStoreClient(
    settings.SUPABASE_URL,
    settings.SUPABASE_SERVICE_KEY,
    settings.SUPABASE_BUCKET_NAME,
    timeout=settings.HTTP_TIMEOUT_SECONDS,
)
