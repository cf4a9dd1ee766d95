from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import Schema, fields, validate, EXCLUDE
from sqlalchemy import or_
from datetime import timezone
from models import db, Task, User
from auth import get_current_user, get_json_body, validate_request_data
from permissions import get_team_or_404, get_membership, authorize, team_ids_for
from errors import BadRequest, Forbidden, NotFound
import logging

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

DEFAULT_STATUS = 'todo'
LIST_MODES = ('personal', 'all')

# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """建立任務驗證 (status 是自由字串,空的時候用 todo)"""
    class Meta:
        unknown = EXCLUDE

    title = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Task title is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(allow_none=True, validate=validate.Length(max=50))
    assignee = fields.Str(allow_none=True, validate=validate.Length(max=100))
    due_date = fields.DateTime(data_key='dueDate', allow_none=True)
    assigned_to_id = fields.Int(data_key='assignedToId', allow_none=True)

class UpdateTaskSchema(Schema):
    """更新任務驗證 (只處理有送的欄位)"""
    class Meta:
        unknown = EXCLUDE

    title = fields.Str(allow_none=True, validate=validate.Length(min=1, max=255))
    description = fields.Str(allow_none=True, validate=validate.Length(max=5000))
    status = fields.Str(allow_none=True, validate=validate.Length(max=50))
    assignee = fields.Str(allow_none=True, validate=validate.Length(max=100))
    due_date = fields.DateTime(data_key='dueDate', allow_none=True)
    assigned_to_id = fields.Int(data_key='assignedToId', allow_none=True)

# ============================================
# 輔助函數
# ============================================

def to_naive_utc(value):
    """資料庫存 naive UTC,帶時區的時間先轉換"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def resolve_assigned_user(user_id, team=None):
    """
    檢查被指派的使用者

    團隊任務只能指派給團隊成員
    """
    if user_id is None:
        return None

    user = db.session.get(User, user_id)
    if not user:
        raise NotFound('Assigned user not found')

    if team is not None and not get_membership(team.id, user.id):
        raise BadRequest('Assigned user is not a member of this team')

    return user

def get_task_or_404(task_id):
    task = db.session.get(Task, task_id)
    if not task:
        raise NotFound('Task not found')
    return task

# ============================================
# 任務操作 (呼叫者由 handler 明確傳入)
# ============================================

def list_tasks(caller, mode=None):
    """
    依模式列出任務

    - None: 呼叫者建立的所有任務 (個人 + 團隊)
    - 'personal': 呼叫者建立且沒有團隊的任務
    - 'all': 呼叫者建立的任務,或屬於呼叫者任一團隊的任務
    """
    if mode is None:
        query = Task.query.filter(Task.user_id == caller.id)
    elif mode == 'personal':
        query = Task.query.filter(Task.user_id == caller.id, Task.team_id.is_(None))
    elif mode == 'all':
        query = Task.query.filter(or_(
            Task.user_id == caller.id,
            Task.team_id.in_(team_ids_for(caller))
        ))
    else:
        raise BadRequest(f"Invalid mode '{mode}', expected one of: {', '.join(LIST_MODES)}")

    return query.order_by(Task.id.asc()).all()

def create_task(caller, data, team=None):
    """
    建立任務

    team 不是 None 時,呼叫者的成員資格要先由 handler 檢查過
    """
    assigned_user = resolve_assigned_user(data.get('assigned_to_id'), team)

    task = Task(
        title=data['title'],
        description=data.get('description'),
        status=data.get('status') or DEFAULT_STATUS,
        assignee=data.get('assignee') or caller.username,
        due_date=to_naive_utc(data.get('due_date')),
        user_id=caller.id,
        team_id=team.id if team else None,
        assigned_to=assigned_user.id if assigned_user else None
    )

    db.session.add(task)
    db.session.commit()

    logger.info(
        f"Task created: {task.title} (id={task.id}, team={task.team_id}) by user {caller.username}"
    )
    return task

def update_task(task, data):
    """
    更新任務

    title/description/status/assignee: 有送且不是 null 才覆蓋
    dueDate: 只要有送這個 key 就覆蓋,null 代表清除
    """
    for field in ['title', 'description', 'status', 'assignee']:
        if data.get(field) is not None:
            setattr(task, field, data[field])

    if 'due_date' in data:
        task.due_date = to_naive_utc(data['due_date'])

    if 'assigned_to_id' in data:
        assigned_user = resolve_assigned_user(data['assigned_to_id'], task.team)
        task.assigned_to = assigned_user.id if assigned_user else None

    db.session.commit()

    logger.info(f"Task {task.id} updated")
    return task

def delete_task(task_id):
    """依 id 直接刪除,不存在時不做事"""
    task = db.session.get(Task, task_id)
    if not task:
        logger.info(f"Delete requested for missing task {task_id}")
        return False

    db.session.delete(task)
    db.session.commit()

    logger.info(f"Task deleted: {task_id}")
    return True

# ============================================
# 查詢任務
# ============================================

@tasks_bp.route('', methods=['GET'])
@jwt_required()
def get_tasks():
    """
    查詢任務列表

    Query params:
        userId: 可選,必須是呼叫者本人
        mode: personal | all (不給則回傳自己建立的任務)
    """
    current_user = get_current_user()

    user_id = None
    if request.args.get('userId'):
        user_id = request.args.get('userId', type=int)
        if user_id is None:
            raise BadRequest('userId must be an integer')

    if user_id is not None and user_id != current_user.id:
        raise Forbidden('Cannot list tasks of another user')

    tasks = list_tasks(current_user, request.args.get('mode') or None)
    return jsonify([task.to_dict() for task in tasks]), 200

# ============================================
# 建立任務
# ============================================

@tasks_bp.route('', methods=['POST'])
@jwt_required()
def add_task():
    """建立個人任務,帶 teamId 時建立在該團隊下 (必須是成員)"""
    current_user = get_current_user()

    team = None
    if request.args.get('teamId'):
        team_id = request.args.get('teamId', type=int)
        if team_id is None:
            raise BadRequest('teamId must be an integer')
        team = get_team_or_404(team_id)
        authorize(team, current_user, 'create_task')

    data = validate_request_data(CreateTaskSchema, get_json_body())
    task = create_task(current_user, data, team)

    return jsonify(task.to_dict()), 201

# ============================================
# 更新任務
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['PUT'])
@jwt_required()
def put_task(task_id):
    get_current_user()

    task = get_task_or_404(task_id)
    data = validate_request_data(UpdateTaskSchema, get_json_body())
    task = update_task(task, data)

    return jsonify(task.to_dict()), 200

# ============================================
# 刪除任務
# ============================================

@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@jwt_required()
def remove_task(task_id):
    # TODO: 沒有檢查建立者或團隊權限,確認需求後再決定要不要限制
    current_user = get_current_user()
    logger.info(f"User {current_user.username} deleting task {task_id}")

    delete_task(task_id)
    return '', 200
