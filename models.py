
import enum
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()


def isoformat(value):
    return value.isoformat() if value else None


# ============================================
# 0. 團隊角色
# ============================================
class Role(enum.Enum):
    OWNER = 'OWNER'
    ADMIN = 'ADMIN'
    MEMBER = 'MEMBER'

    @property
    def rank(self):
        """權限等級: OWNER > ADMIN > MEMBER (非成員為 0)"""
        return ROLE_RANK[self]


ROLE_RANK = {
    Role.MEMBER: 1,
    Role.ADMIN: 2,
    Role.OWNER: 3,
}

# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯
    tasks_created = db.relationship('Task', foreign_keys='Task.user_id', backref='creator', lazy=True)
    tasks_assigned = db.relationship('Task', foreign_keys='Task.assigned_to', backref='assigned_user', lazy=True)
    memberships = db.relationship('TeamMember', backref='user', lazy=True)

    def __repr__(self):
        return f'<User {self.username}>'

    def to_ref(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email
        }

    def to_dict(self):
        # password_hash 永遠不輸出
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'createdAt': isoformat(self.created_at)
        }

# ============================================
# 2. Team 模型
# ============================================
class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯 (成員與任務只用 team_id 對應,輸出時不帶回 team 物件)
    creator = db.relationship('User', foreign_keys=[created_by])

    def __repr__(self):
        return f'<Team {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'createdBy': self.creator.to_ref() if self.creator else None,
            'createdAt': isoformat(self.created_at)
        }

# ============================================
# 3. TeamMember 模型
# ============================================
class TeamMember(db.Model):
    __tablename__ = 'team_members'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    role = db.Column(db.Enum(Role, name='team_role'), nullable=False, default=Role.MEMBER)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 唯一性約束
    __table_args__ = (
        db.UniqueConstraint('team_id', 'user_id', name='unique_team_member'),
        db.Index('idx_team_member_user', 'user_id'),
    )

    def __repr__(self):
        return f'<TeamMember team={self.team_id} user={self.user_id} {self.role.value}>'

    def to_dict(self):
        return {
            'id': self.id,
            'teamId': self.team_id,
            'user': self.user.to_ref(),
            'role': self.role.value,
            'joinedAt': isoformat(self.joined_at)
        }

# ============================================
# 4. Task 模型
# ============================================
class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(50), nullable=False, default='todo')
    assignee = db.Column(db.String(100))  # 顯示用名稱

    # 關聯欄位
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)  # 建立者
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=True)  # NULL = 個人任務
    assigned_to = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # 時間欄位
    due_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    team = db.relationship('Team')

    # 索引
    __table_args__ = (
        db.Index('idx_task_user_team', 'user_id', 'team_id'),
        db.Index('idx_task_team_status', 'team_id', 'status'),
    )

    def __repr__(self):
        return f'<Task {self.id} {self.title!r} {self.status}>'

    @property
    def is_done(self):
        return self.status == 'done'

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'assignee': self.assignee,
            'dueDate': isoformat(self.due_date),
            'createdAt': isoformat(self.created_at),
            'user': self.creator.to_ref(),
            'teamId': self.team_id,
            'team': {
                'id': self.team.id,
                'name': self.team.name
            } if self.team_id else None,
            'assignedTo': self.assigned_user.to_ref() if self.assigned_to else None
        }
