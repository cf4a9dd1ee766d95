from models import db, Role, Team, TeamMember
from errors import Forbidden, NotFound
import logging

logger = logging.getLogger(__name__)

# ============================================
# 權限對照表
# ============================================

NON_MEMBER_RANK = 0

# action -> (需要的角色, 是否必須完全相同)
ACTION_REQUIREMENTS = {
    'view_team': (Role.MEMBER, False),
    'view_members': (Role.MEMBER, False),
    'view_tasks': (Role.MEMBER, False),
    'create_task': (Role.MEMBER, False),
    'invite_member': (Role.ADMIN, False),
    'remove_member': (Role.ADMIN, False),
    'invite_admin': (Role.OWNER, True),
    'delete_team': (Role.OWNER, True),
}

ACTION_MESSAGES = {
    'invite_member': 'Only team owners and admins can invite members',
    'remove_member': 'Only team owners and admins can remove members',
    'invite_admin': 'Only the team owner can add admins',
    'delete_team': 'Only the team owner can delete the team',
}

# ============================================
# 輔助函數
# ============================================

def get_team_or_404(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFound('Team not found')
    return team


def get_membership(team_id, user_id):
    """回傳 (team, user) 的 TeamMember,不是成員則回傳 None"""
    return TeamMember.query.filter_by(team_id=team_id, user_id=user_id).first()


def role_rank(role):
    return role.rank if role else NON_MEMBER_RANK


def is_permitted(role, action):
    """
    判斷某個角色能不能執行 action

    Args:
        role: Role 或 None (非成員)
        action: ACTION_REQUIREMENTS 裡的 key
    """
    if action not in ACTION_REQUIREMENTS:
        raise ValueError(f"Unknown team action: {action}")

    required, exact = ACTION_REQUIREMENTS[action]
    if role is None:
        return False
    if exact:
        return role == required
    return role_rank(role) >= role_rank(required)


def authorize(team, user, action):
    """
    檢查 user 在 team 裡是否有權限執行 action

    在任何修改之前呼叫,權限不足直接 raise Forbidden

    Returns:
        TeamMember: 呼叫者的成員資料
    """
    membership = get_membership(team.id, user.id)
    role = membership.role if membership else None

    if not is_permitted(role, action):
        logger.warning(
            f"Permission denied: user {user.username} ({role.value if role else 'non-member'}) "
            f"tried {action} on team {team.id}"
        )
        raise Forbidden(ACTION_MESSAGES.get(action, 'Access denied'))

    return membership


def team_ids_for(user):
    """使用者所屬團隊 id 的 select,給 in_() 用"""
    return db.select(TeamMember.team_id).where(TeamMember.user_id == user.id)
