from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE, pre_load
from sqlalchemy.exc import IntegrityError
from models import db, User
from errors import BadRequest, ValidationFailed, Unauthorized, NotFound, Conflict
from extensions import bcrypt, limiter
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

class RegisterSchema(Schema):
    """註冊輸入驗證"""
    class Meta:
        unknown = EXCLUDE

    username = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=100, error='Username must be 1-100 characters'),
        error_messages={'required': 'Username is required'}
    )
    password = fields.Str(
        required=True,
        validate=validate.Length(max=128, error='Password must be at most 128 characters'),
        error_messages={'required': 'Password is required'}
    )
    email = fields.Email(allow_none=True, load_default=None, error_messages={
        'invalid': 'Invalid email format'
    })

    @pre_load
    def drop_empty_email(self, data, **kwargs):
        # 空字串視為沒填,之後用預設 email
        if isinstance(data, dict) and data.get('email') == '':
            data = dict(data)
            data.pop('email')
        return data

class LoginSchema(Schema):
    """登入輸入驗證"""
    class Meta:
        unknown = EXCLUDE

    username = fields.Str(required=True)
    password = fields.Str(required=True)

# ============================================
# Helper Functions (供其他模組使用)
# ============================================

def get_json_body():
    """取得 JSON body,不是 JSON object 就回 400"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Request body must be JSON')
    return data

def validate_request_data(schema_class, data, **kwargs):
    """
    統一的輸入驗證函數

    Returns:
        dict: 驗證後的資料

    Raises:
        ValidationFailed: 欄位驗證失敗 (details 帶 marshmallow 的錯誤訊息)
    """
    schema = schema_class(**kwargs)
    try:
        return schema.load(data)
    except ValidationError as err:
        raise ValidationFailed(err.messages)

def issue_token(user):
    # identity 用 username,跟 get_current_user 的查詢方式一致
    return create_access_token(identity=user.username)

def get_current_user():
    """
    取得當前登入的使用者 (呼叫者)

    handler 取得後要明確傳給各個操作,不在操作內部讀 JWT

    Raises:
        NotFound: token 有效但資料庫沒有這個使用者
    """
    username = get_jwt_identity()
    user = User.query.filter_by(username=username).first()

    if not user:
        logger.warning(f"Token valid but user not found: {username}")
        raise NotFound('User not found')

    return user

# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per hour")
def register():
    """
    使用者註冊

    username 重複回 409,沒給 email 就用 <username>@example.com
    """
    result = validate_request_data(RegisterSchema, get_json_body())

    min_length = current_app.config['PASSWORD_MIN_LENGTH']
    if len(result['password']) < min_length:
        raise ValidationFailed({'password': [f'Password must be at least {min_length} characters']})

    # 檢查 username 是否已存在
    if User.query.filter_by(username=result['username']).first():
        raise Conflict('Username already exists')

    hashed_password = bcrypt.generate_password_hash(result['password']).decode('utf-8')

    user = User(
        username=result['username'],
        email=result.get('email') or f"{result['username']}@example.com",
        password_hash=hashed_password
    )

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        # 同時註冊同一個 username,由 unique constraint 擋下
        db.session.rollback()
        raise Conflict('Username already exists')

    logger.info(f"New user registered: {user.username}")

    return jsonify({
        'message': 'User registered successfully',
        'user': user.to_dict(),
        'token': issue_token(user)
    }), 201

# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """
    使用者登入

    不區分是 username 錯還是 password 錯,避免帳號枚舉攻擊
    """
    result = validate_request_data(LoginSchema, get_json_body())

    user = User.query.filter_by(username=result['username']).first()

    if not user or not user.password_hash or \
            not bcrypt.check_password_hash(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for username: {result['username']}")
        raise Unauthorized('Invalid username or password')

    logger.info(f"User logged in: {user.username}")

    return jsonify({
        'message': 'Login successful',
        'user': user.to_dict(),
        'token': issue_token(user)
    }), 200

# ============================================
# 取得當前使用者資訊
# ============================================

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    """取得當前登入使用者的資訊"""
    user = get_current_user()
    return jsonify(user.to_dict()), 200

# ============================================
# 依 id 查詢使用者
# ============================================

@auth_bp.route('/<int:user_id>', methods=['GET'])
@jwt_required()
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('User not found')
    return jsonify(user.to_dict()), 200
