from __future__ import annotations
from abc import ABC, abstractmethod
import asyncio
from datetime import datetime, timedelta
from typing import Optional
import webbrowser
import logging
import aiohttp
from aiohttp import ClientSession, ClientResponse
from oauth2_client.credentials_manager import CredentialManager, ServiceInformation


from .const import (
    SIM_HOST, API_HOST, DEFAULT_SCOPES, ENDPOINT_AUTHORIZE, ENDPOINT_TOKEN,
    MEDIA_TYPE_JSON, MEDIA_TYPE_EVENT_STREAM, STREAM_CONNECT_TIMEOUT, STREAM_READ_TIMEOUT
)

_LOGGER = logging.getLogger(__name__)

# This is for compatability with Home Assistant
class AbstractAuth(ABC):
    """Abstract class to make authenticated requests. This is a pattern required by Home Assistant

    This is the token provider used by the event stream and the API wrapper.
    """

    def __init__(self, websession: ClientSession, host: str):
        """Initialize the auth."""
        self.websession = websession
        self.host = host

    @abstractmethod
    async def async_get_access_token(self) -> str | None:
        """Return a valid access token."""

    @abstractmethod
    async def async_refresh_token(self) -> bool:
        """ Force a refresh of the access token, returns True when a new token was obtained """

    async def request(self, method, endpoint:str, lang:str=None, **kwargs) -> ClientResponse:
        """Make a request."""
        headers = kwargs.pop("headers", None)

        if headers is None:
            headers = {}
        else:
            headers = dict(headers)

        access_token = await self.async_get_access_token()
        headers['authorization'] = f'Bearer {access_token}'
        headers['Accept'] = MEDIA_TYPE_JSON
        if lang:
            headers['Accept-Language'] = lang
        if method == 'put':
            headers['Content-Type'] = MEDIA_TYPE_JSON

        return await self.websession.request(
            method, f"{self.host}{endpoint}", **kwargs, headers=headers,
        )

    async def stream(self, endpoint:str, access_token:str, lang:str=None) -> ClientResponse:
        """ Open the raw Server Sent Events (SSE) response, the body is consumed by the caller """
        headers = {
            'authorization': f'Bearer {access_token}',
            'Accept': MEDIA_TYPE_EVENT_STREAM
        }
        if lang:
            headers['Accept-Language'] = lang
        # the stream is long lived so only the connect and idle read times are limited
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=STREAM_CONNECT_TIMEOUT, sock_read=STREAM_READ_TIMEOUT)
        return await self.websession.get(f"{self.host}{endpoint}", headers=headers, timeout=timeout)


class AuthManager(AbstractAuth):
    """ Class the implements a full fledged authentication manager when the SDK is not being used by Home Assistant """
    def __init__(self, client_id, client_secret, scopes=None, simulate=False):
        host = SIM_HOST if simulate else API_HOST
        session = ClientSession()
        super().__init__(session, host)

        if scopes is None: scopes = DEFAULT_SCOPES
        service_information = ServiceInformation(
            f'{host}{ENDPOINT_AUTHORIZE}',
            f'{host}{ENDPOINT_TOKEN}',
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes
        )
        self._cm = HomeConnectCredentialsManager(service_information)

    def renew_token(self):
        """ Renews the access token using the stored refresh token """
        self._cm.init_with_token(self.refresh_token)

    def get_access_token(self):
        """ Gets an access token """
        if self._cm.access_token_expirs_at and datetime.now() > self._cm.access_token_expirs_at:
            self.renew_token()
        return self._cm._access_token

    async def async_get_access_token(self) -> str | None:
        """ Gets an access token """
        return await asyncio.get_running_loop().run_in_executor(None, self.get_access_token)

    async def async_refresh_token(self) -> bool:
        """ Renew the access token, used after the service rejected the current one """
        if not self.refresh_token:
            _LOGGER.warning("Cannot refresh the access token without a refresh token")
            return False
        try:
            await asyncio.get_running_loop().run_in_executor(None, self.renew_token)
        except Exception as ex:
            _LOGGER.warning("Failed to refresh the access token", exc_info=ex)
            return False
        return True


    access_token = property(get_access_token)
    access_token_expirs_at = property(lambda self: self._cm.access_token_expirs_at)
    refresh_token = property(
        lambda self: self._cm.refresh_token,
        lambda self, token: self._cm.init_with_token(token)
    )

    def login(self, redirect_url:str=None):
        """ Login to the Home Connect service using the code flow of OAuth 2 """
        if redirect_url is None:
            redirect_url = 'http://localhost:7878/auth'

        # Builds the authorization url and starts the local server according to the redirect_uri parameter
        url = self._cm.init_authorize_code_process(redirect_url, state='ignore')
        webbrowser.open(url)

        code = self._cm.wait_and_terminate_authorize_code_process()
        # From this point the http server is opened on the specified port and waits to receive a single GET request
        _LOGGER.debug('Code got = %s', code)
        self._cm.init_with_authorize_code(redirect_url, code)
        _LOGGER.debug('Access token obtained, expires at %s', self.access_token_expirs_at)

    async def close(self):
        """ Close the authentication manager when it is no longer in use """
        await self.websession.close()


# Extend the CredentialManager class so we can capture the token expiration time
class HomeConnectCredentialsManager(CredentialManager):
    """ Extend the oauth2_client library CredentialManager to handle and store the received token """

    def __init__(self, service_information: ServiceInformation, proxies: Optional[dict] = None):
        super().__init__(service_information, proxies)
        self._raw_token = None
        self.access_token_expirs_at = None
        self.id_token = None

    def _process_token_response(self, token_response: dict, refresh_token_mandatory: bool):
        """ Override the parent's method to handle the extra data we care about """
        self._raw_token = token_response
        if 'expires_in' in token_response:
            self.access_token_expirs_at = datetime.now() + timedelta(seconds=token_response['expires_in'])
        else:
            self.access_token_expirs_at = None
        self.id_token = token_response.get('id_token')
        return super()._process_token_response(token_response, refresh_token_mandatory)
