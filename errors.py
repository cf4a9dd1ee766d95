from flask import jsonify, request
from werkzeug.exceptions import HTTPException
from models import db
import logging

logger = logging.getLogger(__name__)

# ============================================
# 錯誤分類
# ============================================

class ApiError(Exception):
    """
    所有業務錯誤的基底類別

    handler 在偵測到問題的地方直接 raise,由 register_error_handlers
    統一轉成 JSON 回應 (不再每個 handler 各自 try/except 回 500)
    """
    status_code = 500
    error = 'internal_error'

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {
            'error': self.error,
            'message': self.message,
            'status': self.status_code
        }
        if self.details is not None:
            payload['details'] = self.details
        return payload


class BadRequest(ApiError):
    status_code = 400
    error = 'bad_request'


class ValidationFailed(BadRequest):
    error = 'validation_failed'

    def __init__(self, details, message='Validation failed'):
        super().__init__(message, details=details)


class Unauthorized(ApiError):
    status_code = 401
    error = 'unauthorized'


class Forbidden(ApiError):
    status_code = 403
    error = 'forbidden'


class NotFound(ApiError):
    status_code = 404
    error = 'not_found'


class Conflict(ApiError):
    status_code = 409
    error = 'conflict'


class RuleViolation(Conflict):
    """與現有資料衝突的業務規則 (例如移除 owner、團隊仍有未完成任務),回 400"""
    status_code = 400
    error = 'rule_violation'

# ============================================
# 全域錯誤處理
# ============================================

HTTP_ERROR_CODES = {
    400: ('bad_request', 'The request is malformed or invalid'),
    404: ('not_found', 'The requested resource does not exist'),
    405: ('method_not_allowed', 'The HTTP method is not allowed for this endpoint'),
    415: ('unsupported_media_type', 'Request body must be JSON'),
    429: ('rate_limit_exceeded', 'Too many requests. Please try again later.'),
}


def register_error_handlers(app):
    """把錯誤分類對應到 HTTP status code"""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            db.session.rollback()
            app.logger.error(f"API error: {error.message}", exc_info=True)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        code, message = HTTP_ERROR_CODES.get(
            error.code,
            (error.name.lower().replace(' ', '_'), error.description)
        )
        if error.code == 429:
            app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return jsonify({
            'error': code,
            'message': message,
            'status': error.code
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """
        最後的防線,捕捉所有沒被處理的 exception

        1. rollback transaction
        2. 記錄完整的 stack trace 到 log
        3. 不洩漏錯誤細節給前端
        """
        db.session.rollback()

        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)

        return jsonify({
            'error': 'internal_server_error',
            'message': 'An internal error occurred. Please try again later.',
            'status': 500
        }), 500
