"""
Utility modules for OpenHE.
"""

from .logger import MethodsLogger, get_logger, set_log_file

__all__ = ['MethodsLogger', 'get_logger', 'set_log_file']
