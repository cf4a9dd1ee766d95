from flask import Flask, request, jsonify
from config import get_config
from models import db
from extensions import jwt, bcrypt, cors, limiter
from errors import register_error_handlers
from sqlalchemy import text
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
import os

# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging 系統

    1. 分開 info 和 error logs
    2. 使用 RotatingFileHandler 避免 log 檔案過大
    3. 模組 logger (auth / tasks / teams ...) 也寫到同樣的檔案
    """
    log_dir = app.config.get('LOG_DIR', 'logs')
    if not os.path.exists(log_dir):
        os.mkdir(log_dir)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # Info log handler (記錄一般資訊)
    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    # Error log handler (只記錄錯誤)
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)

    # handler 只掛在 root,app.logger 和模組 logger 都會 propagate 上來
    root_logger = logging.getLogger()
    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)
    root_logger.setLevel(level)
    app.logger.setLevel(level)

    app.logger.info('Application startup')

# ============================================
# JWT 錯誤處理
# ============================================

def register_jwt_callbacks(app):

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        """處理 token 過期"""
        app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return jsonify({
            'error': 'token_expired',
            'message': 'The token has expired. Please login again.',
            'status': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        """處理無效的 token"""
        app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'error': 'invalid_token',
            'message': 'Token validation failed. Please provide a valid token.',
            'status': 401
        }), 401

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        """處理缺少 token"""
        app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'error': 'authorization_required',
            'message': 'Access token is required. Please provide an authorization token.',
            'status': 401
        }), 401

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': 'token_revoked',
            'message': 'The token has been revoked. Please login again.',
            'status': 401
        }), 401

# ============================================
# Request/Response Logging
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        """記錄每個請求"""
        if not app.debug:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        """記錄每個回應並加上 security headers"""
        if not app.debug:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response

# ============================================
# Health Check / API 首頁
# ============================================

def register_core_routes(app):

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """
        健康檢查端點

        用於 load balancer 或監控系統檢查服務是否正常
        """
        try:
            db.session.execute(text('SELECT 1'))

            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'timestamp': datetime.utcnow().isoformat()
            }), 200
        except Exception as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

    @app.route('/')
    @limiter.limit("10 per minute")
    def home():
        """API 首頁"""
        return jsonify({
            'message': 'Team Task API',
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/api/auth/register', 'methods': ['POST']},
                    'login': {'path': '/api/auth/login', 'methods': ['POST']},
                    'me': {'path': '/api/auth/me', 'methods': ['GET']},
                    'user': {'path': '/api/auth/:id', 'methods': ['GET']}
                },
                'tasks': {
                    'list': {'path': '/api/tasks', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/api/tasks/:id', 'methods': ['PUT', 'DELETE']}
                },
                'teams': {
                    'list': {'path': '/api/teams', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/api/teams/:id', 'methods': ['GET', 'DELETE']},
                    'members': {'path': '/api/teams/:id/members', 'methods': ['GET', 'POST']},
                    'member': {'path': '/api/teams/:id/members/:memberId', 'methods': ['DELETE']},
                    'tasks': {'path': '/api/teams/:id/tasks', 'methods': ['GET', 'POST']}
                }
            },
            'rate_limits': {
                'default': '200 per hour, 1000 per day',
                'auth': {
                    'register': '5 per hour',
                    'login': '10 per minute'
                }
            }
        })

# ============================================
# 建立 Flask App
# ============================================

def create_app(config_class=None):
    config_class = config_class or get_config()
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # 擴展初始化
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)
    cors.init_app(
        app,
        supports_credentials=True,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )

    if not app.debug and not app.testing:
        setup_logging(app)

    register_jwt_callbacks(app)
    register_error_handlers(app)
    register_request_hooks(app)
    register_core_routes(app)

    # 註冊 Blueprints
    from auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    from tasks import tasks_bp
    app.register_blueprint(tasks_bp, url_prefix='/api/tasks')

    from teams import teams_bp
    app.register_blueprint(teams_bp, url_prefix='/api/teams')

    from view_db import register_commands
    register_commands(app)

    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    return app

# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境用 gunicorn: gunicorn "app:create_app()"
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    port = int(os.getenv('FLASK_PORT', 8080))

    create_app().run(
        debug=debug_mode,
        port=port,
        host='0.0.0.0'
    )
