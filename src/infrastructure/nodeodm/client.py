"""
NodeODM API client implementation.

Infrastructure layer for talking to a processing node over HTTP.
"""

from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

import requests
from requests.exceptions import RequestException
from requests_toolbelt import MultipartEncoder, MultipartEncoderMonitor

from domain.models import AuthInfo, ByteRange, Node, NodeInfo, NodeOption, TaskInfo, TaskStatus
from domain.exceptions import (
    AuthRequiredError,
    ServiceRejectedError,
    TransportError,
    UnauthorizedError,
)
from shared.logging import get_logger

_logger = get_logger(__name__)

# Fields every task creation request carries
SKIP_POST_PROCESSING = 'true'


class NodeODMClient:
    """
    NodeODM API client implementation.

    Implements INodeGateway. The node is an immutable value; the token it
    carries is appended to every request URL.
    """

    def __init__(
        self,
        node: Node,
        timeout: Optional[float] = 60.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize NodeODM client.

        Args:
            node: Node to talk to
            timeout: Connect/read timeout for each request (None = wait forever)
            session: Optional preconfigured requests session
            logger: Logger instance
        """
        self.node = node
        self.timeout = timeout
        self.logger = logger or _logger

        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
        })

    def _request(
        self,
        method: str,
        path: str,
        **kwargs
    ) -> requests.Response:
        """
        Make an API request and check the HTTP status.

        Raises:
            UnauthorizedError: On HTTP 401
            TransportError: On connection errors or any other non-200 status
        """
        url = self.node.url_for(path)
        self.logger.debug(f"{method}: {url}")
        kwargs.setdefault('timeout', self.timeout)

        try:
            response = self.session.request(method, url, **kwargs)
        except RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            response.close()
            raise UnauthorizedError(f"Unauthorized: {method} {path}")
        if response.status_code not in (200, 206):
            response.close()
            raise TransportError(
                f"Server returned status code: {response.status_code} ({method} {path})"
            )
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {path}: {e}") from e

    @staticmethod
    def _check_error(body: Any, what: str) -> None:
        if isinstance(body, dict) and body.get('error'):
            raise ServiceRejectedError(f"{what}: {body['error']}")

    def _task_uuid(self, body: Any, what: str) -> str:
        self._check_error(body, what)
        uuid = body.get('uuid') if isinstance(body, dict) else None
        if not uuid:
            raise ServiceRejectedError(f"{what}: no task UUID in response")
        return uuid

    def _task_fields(self, options_json: str) -> Dict[str, Any]:
        return {
            'skipPostProcessing': (None, SKIP_POST_PROCESSING),
            'options': (None, options_json),
        }

    def create_task_single(
        self,
        files: Sequence[Path],
        options_json: str,
        on_progress: Optional[Callable[[int, int], None]] = None
    ) -> str:
        """
        Submit every image in one streamed multipart request.

        The body is produced from the open files while it is sent, so memory
        use does not grow with the dataset.

        Args:
            files: Image paths
            options_json: Serialized task options
            on_progress: Optional ``(sent, total)`` callback, in body bytes

        Returns:
            Task UUID
        """
        self.logger.info(f"Creating task with {len(files)} images (single request)")

        with ExitStack() as stack:
            fields: List[Tuple[str, Any]] = []
            for file_path in files:
                path = Path(file_path)
                try:
                    fh = stack.enter_context(open(path, 'rb'))
                except OSError as e:
                    raise TransportError(f"Cannot read {path}: {e}") from e
                fields.append(('images', (path.name, fh, 'application/octet-stream')))

            fields.append(('skipPostProcessing', SKIP_POST_PROCESSING))
            fields.append(('options', options_json))

            callback = None
            if on_progress is not None:
                callback = lambda monitor: on_progress(monitor.bytes_read, monitor.len)
            stream = MultipartEncoderMonitor(MultipartEncoder(fields=fields), callback)

            body = self._json(
                'POST',
                '/task/new',
                data=stream,
                headers={'Content-Type': stream.content_type}
            )

        return self._task_uuid(body, "Task creation failed")

    def init_task(self, options_json: str) -> str:
        """POST /task/new/init. Returns the provisional task UUID."""
        body = self._json('POST', '/task/new/init', files=self._task_fields(options_json))
        return self._task_uuid(body, "Task init failed")

    def upload_file(self, uuid: str, file_path: Path) -> None:
        """POST /task/new/upload/<uuid> with a single image."""
        path = Path(file_path)
        try:
            with open(path, 'rb') as fh:
                body = self._json(
                    'POST',
                    f'/task/new/upload/{uuid}',
                    files={'images': (path.name, fh, 'application/octet-stream')}
                )
        except OSError as e:
            raise TransportError(f"Cannot read {path}: {e}") from e

        if isinstance(body, dict) and body.get('error'):
            raise TransportError(f"Upload of {path.name} failed: {body['error']}")
        if not (isinstance(body, dict) and body.get('success')):
            raise TransportError(
                "Cannot complete upload. /task/new/upload failed with success: false"
            )

    def commit_task(self, uuid: str) -> str:
        """POST /task/new/commit/<uuid>. Returns the task UUID."""
        body = self._json('POST', f'/task/new/commit/{uuid}', data={})
        return self._task_uuid(body, "Task commit failed")

    def get_status(self, uuid: str) -> TaskInfo:
        """GET /task/<uuid>/info."""
        body = self._json('GET', f'/task/{uuid}/info')
        self._check_error(body, "Task info failed")
        try:
            code = body['status']['code']
            status = TaskStatus(code)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Unexpected task info response: {body}") from e
        return TaskInfo(status=status, processing_time=body.get('processingTime', 0) or 0)

    def get_output(self, uuid: str, line: int = 0) -> List[str]:
        """GET /task/<uuid>/output?line=N."""
        body = self._json('GET', f'/task/{uuid}/output', params={'line': line})
        self._check_error(body, "Task output failed")
        if not isinstance(body, list):
            raise TransportError(f"Unexpected task output response: {body!r}")
        return [str(line) for line in body]

    def cancel_task(self, uuid: str) -> None:
        """POST /task/cancel."""
        self.logger.debug(f"Canceling task {uuid}")
        body = self._json('POST', '/task/cancel', data={'uuid': uuid})
        self._check_error(body, "Cancel failed")

    def open_asset(
        self,
        uuid: str,
        asset: str,
        byte_range: Optional[ByteRange] = None
    ) -> requests.Response:
        """
        GET /task/<uuid>/download/<asset> as a stream.

        The caller must close the returned response.
        """
        headers = {'Range': byte_range.header_value()} if byte_range else None
        return self._request(
            'GET',
            f'/task/{uuid}/download/{asset}',
            headers=headers,
            stream=True
        )

    def info(self) -> NodeInfo:
        """GET /info."""
        body = self._json('GET', '/info')
        if isinstance(body, dict) and body.get('error'):
            if str(body['error']).startswith('Invalid authentication token'):
                raise UnauthorizedError(body['error'])
            raise ServiceRejectedError(body['error'])

        max_images = body.get('maxImages') or None
        return NodeInfo(version=body.get('version', ''), max_images=max_images)

    def options(self) -> List[NodeOption]:
        """GET /options, sorted by name."""
        body = self._json('GET', '/options')
        self._check_error(body, "Options failed")

        result = []
        for option_data in body:
            try:
                result.append(NodeOption(
                    name=option_data['name'],
                    type=option_data.get('type', ''),
                    value=str(option_data.get('value', '')),
                    domain=option_data.get('domain'),
                    help=option_data.get('help', ''),
                ))
            except (KeyError, TypeError) as e:
                self.logger.warning(f"Failed to parse option: {e}")
                continue

        result.sort(key=lambda o: o.name)
        return result

    def check_authentication(self, error: UnauthorizedError) -> UnauthorizedError:
        """
        Classify a 401: without a token the node wants a login,
        with one the stored token is no longer valid.
        """
        if not self.node.token:
            return AuthRequiredError(f"{self.node} requires authentication")
        return UnauthorizedError("Cannot authenticate with the node (invalid token).")

    def auth_info(self) -> AuthInfo:
        """GET /auth/info."""
        body = self._json('GET', '/auth/info')
        self._check_error(body, "Auth info failed")
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected auth info response: {body!r}")
        return AuthInfo(
            message=body.get('message') or '',
            login_url=body.get('loginUrl') or '',
            register_url=body.get('registerUrl') or '',
        )

    def login(self, login_url: str, username: str, password: str) -> str:
        """POST credentials as JSON to the node's login URL. Returns the token."""
        self.logger.debug(f"POST: {login_url}")
        try:
            response = self.session.post(
                login_url,
                json={'username': username, 'password': password},
                timeout=self.timeout
            )
        except RequestException as e:
            raise TransportError(f"Login failed: {e}") from e

        if response.status_code != 200:
            raise UnauthorizedError(f"Login URL returned status code: {response.status_code}")
        try:
            token = (response.json() or {}).get('token')
        except (ValueError, AttributeError) as e:
            raise TransportError(f"Invalid login response: {e}") from e
        if not token:
            raise UnauthorizedError("Login failed")
        return token

    def try_login(
        self,
        username: str = "",
        password: str = "",
        prompt: Optional[Callable[[], Tuple[str, str]]] = None
    ) -> str:
        """
        Obtain a token through the node's login endpoint.

        ``prompt`` supplies credentials when none were given. On success the
        client switches to the new token; the caller persists it.

        Raises:
            UnauthorizedError: The node offers no login, or login was refused
        """
        auth = self.auth_info()
        if auth.message:
            self.logger.info(auth.message)

        if not auth.login_url:
            raise UnauthorizedError("Cannot login")

        if not username and not password and prompt is not None:
            username, password = prompt()

        token = self.login(auth.login_url, username, password)
        self.node = self.node.with_token(token)
        return token
