"""
Core decorators package
"""

from .error_handling import api_error_handler, api_login_required

__all__ = ['api_error_handler', 'api_login_required']
