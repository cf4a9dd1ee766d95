from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import Schema, fields, validate, EXCLUDE
from sqlalchemy.exc import IntegrityError
from models import db, Role, Team, TeamMember, Task, User
from auth import get_current_user, get_json_body, validate_request_data
from permissions import get_team_or_404, get_membership, authorize
from tasks import CreateTaskSchema, create_task
from errors import NotFound, Conflict, RuleViolation
import logging

teams_bp = Blueprint('teams', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateTeamSchema(Schema):
    """建立團隊驗證"""
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Team name is required'}
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))

class InviteMemberSchema(Schema):
    """邀請成員驗證"""
    class Meta:
        unknown = EXCLUDE

    username = fields.Str(
        required=True,
        validate=validate.Length(min=1),
        error_messages={'required': 'Username is required'}
    )
    # OWNER 只能在建立團隊時產生
    role = fields.Str(
        validate=validate.OneOf([Role.ADMIN.value, Role.MEMBER.value]),
        load_default=Role.MEMBER.value
    )

# ============================================
# 團隊操作
# ============================================

def create_team(caller, data):
    """建立團隊,建立者在同一個 transaction 裡成為 OWNER"""
    team = Team(
        name=data['name'],
        description=data.get('description'),
        created_by=caller.id
    )

    try:
        db.session.add(team)
        db.session.flush()  # 取得 team.id 但不 commit

        db.session.add(TeamMember(team_id=team.id, user_id=caller.id, role=Role.OWNER))

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Team created: {team.name} (id={team.id}) by user {caller.username}")
    return team

def list_user_teams(caller):
    """
    查詢使用者參與的所有團隊

    Returns:
        list: (team, role) tuples
    """
    rows = db.session.query(Team, TeamMember.role).join(
        TeamMember, TeamMember.team_id == Team.id
    ).filter(
        TeamMember.user_id == caller.id
    ).order_by(Team.id.asc()).all()

    return [(team, role) for team, role in rows]

def list_members(team):
    return TeamMember.query.filter_by(team_id=team.id).order_by(TeamMember.id.asc()).all()

def invite_member(caller, team, username, role=Role.MEMBER):
    """
    邀請使用者加入團隊

    呼叫者必須是 OWNER 或 ADMIN,加入 ADMIN 只有 OWNER 可以
    """
    authorize(team, caller, 'invite_member')
    if role == Role.ADMIN:
        authorize(team, caller, 'invite_admin')

    user = User.query.filter_by(username=username).first()
    if not user:
        raise NotFound(f'User not found: {username}')

    if get_membership(team.id, user.id):
        raise Conflict('User is already a member')

    member = TeamMember(team_id=team.id, user_id=user.id, role=role)

    try:
        db.session.add(member)
        db.session.commit()
    except IntegrityError:
        # 同時邀請同一個人,由 unique constraint 擋下
        db.session.rollback()
        raise Conflict('User is already a member')

    logger.info(f"Member added to team {team.id}: {user.username} as {role.value} by {caller.username}")
    return member

def remove_member(caller, team, member_id):
    """
    移除團隊成員

    呼叫者必須是 OWNER 或 ADMIN;OWNER 不論誰都不能移除
    """
    authorize(team, caller, 'remove_member')

    member = TeamMember.query.filter_by(id=member_id, team_id=team.id).first()
    if not member:
        raise NotFound('Member not found')

    if member.role == Role.OWNER:
        raise RuleViolation('Cannot remove team owner')

    db.session.delete(member)
    db.session.commit()

    logger.info(f"Member {member_id} removed from team {team.id} by {caller.username}")

def delete_team(caller, team):
    """
    刪除團隊 (只有 OWNER)

    還有未完成 (status != done) 的任務時拒絕;否則成員、任務、團隊
    在同一個 transaction 裡刪除
    """
    authorize(team, caller, 'delete_team')

    incomplete = Task.query.filter(
        Task.team_id == team.id,
        Task.status != 'done'
    ).count()

    if incomplete > 0:
        raise RuleViolation(
            f'Cannot delete team with incomplete tasks. '
            f'Complete or reassign {incomplete} tasks first.'
        )

    team_id = team.id
    team_name = team.name

    try:
        TeamMember.query.filter_by(team_id=team_id).delete(synchronize_session=False)
        Task.query.filter_by(team_id=team_id).delete(synchronize_session=False)
        db.session.delete(team)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Team deleted: {team_name} (id={team_id}) by user {caller.username}")

# ============================================
# 建立 / 查詢團隊
# ============================================

@teams_bp.route('', methods=['POST'])
@jwt_required()
def post_team():
    current_user = get_current_user()
    data = validate_request_data(CreateTeamSchema, get_json_body())

    team = create_team(current_user, data)
    return jsonify(team.to_dict()), 201

@teams_bp.route('', methods=['GET'])
@jwt_required()
def get_user_teams():
    """取得使用者參與的所有團隊 (附上自己的角色)"""
    current_user = get_current_user()

    teams = []
    for team, role in list_user_teams(current_user):
        item = team.to_dict()
        item['myRole'] = role.value
        teams.append(item)

    return jsonify(teams), 200

@teams_bp.route('/<int:team_id>', methods=['GET'])
@jwt_required()
def get_team(team_id):
    current_user = get_current_user()
    team = get_team_or_404(team_id)
    authorize(team, current_user, 'view_team')

    return jsonify(team.to_dict()), 200

@teams_bp.route('/<int:team_id>', methods=['DELETE'])
@jwt_required()
def remove_team(team_id):
    current_user = get_current_user()
    team = get_team_or_404(team_id)

    delete_team(current_user, team)

    return jsonify({
        'message': 'Team deleted successfully',
        'deletedTeamId': str(team_id)
    }), 200

# ============================================
# 團隊成員管理
# ============================================

@teams_bp.route('/<int:team_id>/members', methods=['GET'])
@jwt_required()
def get_team_members(team_id):
    current_user = get_current_user()
    team = get_team_or_404(team_id)
    authorize(team, current_user, 'view_members')

    return jsonify([m.to_dict() for m in list_members(team)]), 200

@teams_bp.route('/<int:team_id>/members', methods=['POST'])
@jwt_required()
def post_team_member(team_id):
    current_user = get_current_user()
    team = get_team_or_404(team_id)

    data = validate_request_data(InviteMemberSchema, get_json_body())
    member = invite_member(current_user, team, data['username'], Role(data['role']))

    return jsonify(member.to_dict()), 201

@teams_bp.route('/<int:team_id>/members/<int:member_id>', methods=['DELETE'])
@jwt_required()
def delete_team_member(team_id, member_id):
    current_user = get_current_user()
    team = get_team_or_404(team_id)

    remove_member(current_user, team, member_id)

    return jsonify({
        'message': 'Member removed successfully',
        'removedMemberId': str(member_id)
    }), 200

# ============================================
# 團隊任務
# ============================================

@teams_bp.route('/<int:team_id>/tasks', methods=['GET'])
@jwt_required()
def get_team_tasks(team_id):
    """查詢團隊任務,可用 ?status= 篩選"""
    current_user = get_current_user()
    team = get_team_or_404(team_id)
    authorize(team, current_user, 'view_tasks')

    query = Task.query.filter_by(team_id=team.id)

    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)

    tasks = query.order_by(Task.id.asc()).all()
    return jsonify([task.to_dict() for task in tasks]), 200

@teams_bp.route('/<int:team_id>/tasks', methods=['POST'])
@jwt_required()
def post_team_task(team_id):
    current_user = get_current_user()
    team = get_team_or_404(team_id)
    authorize(team, current_user, 'create_task')

    data = validate_request_data(CreateTaskSchema, get_json_body())
    task = create_task(current_user, data, team)

    return jsonify(task.to_dict()), 201
