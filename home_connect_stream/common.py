""" Common classes shared across the code """

from datetime import datetime, timedelta


class HomeConnectError(Exception):
    """ Common exception class for the SDK """
    def __init__(self, msg:str = None, code:int = None, response = None, inner_exception = None):
        self.msg:str = msg
        self.code:int = code
        self.response = response
        self.inner_exception = inner_exception
        if response:
            self.error_key:str = response.error_key
            self.error_description:str = response.error_description
            if not code: self.code = response.status
        else:
            self.error_key = None
            self.error_description = None

        super().__init__(msg, self.code, self.error_key, self.error_description, inner_exception)


def format_datetime(value:datetime) -> str:
    """ Format a timestamp for the human readable status strings """
    if not value:
        return None
    return value.strftime("%Y-%m-%d %I:%M %p")


def format_remaining(until:datetime, now:datetime) -> str:
    """ Return the time left until the timestamp as a short string """
    delta = max(until - now, timedelta(0))
    seconds = int(delta.total_seconds())
    if seconds < 60:
        return f"{seconds}s"
    hours = seconds // 3600
    minutes = (seconds - hours*3600) // 60
    return f"{hours}:{minutes:02}h"
