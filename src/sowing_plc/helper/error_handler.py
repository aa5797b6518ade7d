import asyncio
import functools
import logging
import traceback
from inspect import iscoroutinefunction

from sowing_plc.com.core.exceptions import CommunicationError

logger = logging.getLogger(__name__)


class ErrorTraceback:
    """
    Class to check traceback errors and feedback them to the logger.
    """

    @staticmethod
    def check_error_exist(error: BaseException, error_details: list = None) -> bool:
        """
        Log an error that escaped a decorated function.

        Communication errors are part of normal operation and only logged at
        debug level. Cancellation is not logged.

        :param error: The exception that was raised.
        :type error: BaseException
        :param error_details: List to append the formatted traceback to.
        :type error_details: list
        :return: True if the error was logged as unexpected, otherwise False.
        :rtype: bool
        """
        if isinstance(error, asyncio.CancelledError):
            return False

        if isinstance(error, CommunicationError):
            logger.debug("%s: %s", type(error).__name__, error)
            return False

        formatted = ''.join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
        if error_details is not None:
            error_details.append(formatted)

        logger.error('%s|%s|', type(error), error)
        logger.error(formatted)
        return True

    @staticmethod
    def w_check_error_exist(func):
        """
        Decorator to log errors raised by the decorated function.

        The error is always re-raised.

        :param func: The function to decorate.
        :type func: callable
        :return: The wrapped function.
        :rtype: callable
        """
        if iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except BaseException as error:
                    ErrorTraceback.check_error_exist(error)
                    raise

            return async_wrapper
        else:
            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs):
                try:
                    return func(*args, **kwargs)
                except BaseException as error:
                    ErrorTraceback.check_error_exist(error)
                    raise

            return sync_wrapper
