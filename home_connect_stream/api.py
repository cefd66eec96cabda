from __future__ import annotations
from dataclasses import dataclass
import json
import logging
import asyncio
import aiohttp
from aiohttp import ClientResponse

from .auth import AbstractAuth
from .common import HomeConnectError
from .const import REQUEST_COOLDOWN
from .rate_tracker import RateTracker


_LOGGER = logging.getLogger(__name__)

class HomeConnectApi():
    """ A class that provides basic API calling facilities to the Home Connect API """
    @dataclass
    class ApiResponse():
        """ Class to encapsulate a service response """
        response:ClientResponse
        status:int
        json_body:any
        data:any
        error:any

        def __init__(self, response:ClientResponse, json_body):
            self.response = response
            self.status = response.status
            self.json_body = json_body
            self.data = json_body['data'] if isinstance(json_body, dict) and 'data' in json_body else None
            self.error = json_body['error'] if isinstance(json_body, dict) and 'error' in json_body else None

        @property
        def error_key(self) -> str | None:
            """ Dynamically extract the error key from the response """
            if self.error and "key" in self.error:
                return self.error["key"]
            return None

        @property
        def error_description(self) -> str | None:
            """ Dynamically extract the error description from the response """
            if self.error and "description" in self.error:
                return self.error["description"]
            return None

        @property
        def ok(self) -> bool:
            """ True for any 2xx answer """
            return 200 <= self.status < 300


    def __init__(self, auth:AbstractAuth, rate_tracker:RateTracker, lang:str=None):
        self._auth = auth
        self._rate_tracker = rate_tracker
        self._lang = lang


    async def _async_request(self, method:str, endpoint:str, data=None) -> ApiResponse:
        """ Main function to call the Home Connect API over HTTPS

        A 401 answer is retried exactly once after refreshing the token, every other
        error answer is classified, logged and raised as a HomeConnectError.
        """
        verb = method.upper()
        if method in ['put', 'delete'] and self._rate_tracker.is_cooling_down():
            _LOGGER.warning("API %s blocked - rate limited until %s", verb, self._rate_tracker.cooldown_until)
            raise HomeConnectError(f"API {verb} blocked while rate limited", code=429)

        refreshed = False
        while True:
            result = await self._async_call(method, endpoint, data)
            if result.status != 401:
                break
            if refreshed:
                _LOGGER.error("API %s still unauthorized after a token refresh - path: %s", verb, endpoint)
                raise HomeConnectError("Unauthorized after token refresh", response=result)
            _LOGGER.warning("API %s 401 Unauthorized - refreshing token", verb)
            if not await self._auth.async_refresh_token():
                _LOGGER.error("API %s failed - the access token could not be refreshed", verb)
                raise HomeConnectError("Unauthorized and the token could not be refreshed", response=result)
            _LOGGER.info("Retrying API %s after token refresh", verb)
            refreshed = True

        if result.ok:
            return result

        status = result.status
        if status == 404:
            if method == 'get' and endpoint.endswith('/programs/active'):
                # No active program - expected when the appliance is idle
                _LOGGER.debug("No active program - path: %s", endpoint)
                return result
            _LOGGER.warning("API %s 404 Not Found: %s", verb, endpoint)
        elif status == 409:
            _LOGGER.warning("API %s 409 Conflict - command cannot be executed in current state (%s)", verb, result.error_key)
        elif status == 429:
            _LOGGER.error("API %s 429 Rate Limited", verb)
            self._rate_tracker.record_rate_limited(REQUEST_COOLDOWN)
        elif status == 503:
            _LOGGER.warning("API %s 503 Service Unavailable - appliance may be offline", verb)
        else:
            _LOGGER.error("API %s error %d: %s - path: %s", verb, status, result.json_body, endpoint)

        raise HomeConnectError(result.error_description or f"API {verb} failed ({status})", response=result)


    async def _async_call(self, method:str, endpoint:str, data=None) -> ApiResponse:
        """ Perform a single HTTP call and record the quota headers of the answer """
        response = None
        _LOGGER.debug("API %s: %s", method.upper(), endpoint)
        try:
            response = await self._auth.request(method, endpoint, self._lang, data=data)
            self._rate_tracker.record_headers(response.headers)
            text = await response.text()
            json_body = None
            if text:
                try:
                    json_body = json.loads(text)
                except ValueError:
                    json_body = text
            _LOGGER.debug("API %s response status: %d", method.upper(), response.status)
            return self.ApiResponse(response, json_body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as ex:
            _LOGGER.debug("API call to HomeConnect service failed", exc_info=ex)
            raise HomeConnectError("API call to HomeConnect service failed", code=901, inner_exception=ex) from ex
        finally:
            if response:
                response.close()


    async def async_get(self, endpoint:str) -> ApiResponse:
        """ Implements a HTTP GET request """
        return await self._async_request('get', endpoint)

    async def async_put(self, endpoint:str, data:dict) -> ApiResponse:
        """ Implements a HTTP PUT request, data is the content of the "data" element """
        return await self._async_request('put', endpoint, data=json.dumps({"data": data}))

    async def async_delete(self, endpoint:str) -> ApiResponse:
        """ Implements a HTTP DELETE request """
        return await self._async_request('delete', endpoint)
