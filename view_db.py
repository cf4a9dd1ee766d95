import click
from flask.cli import with_appcontext
from models import db, User, Team, TeamMember, Task


@click.command('init-db')
@with_appcontext
def init_db_command():
    """建立所有資料表"""
    db.create_all()
    click.echo('Database tables created')


@click.command('view-db')
@with_appcontext
def view_db_command():
    """印出資料庫內容 (開發用)"""
    click.echo("\n" + "=" * 60)
    click.echo("Database contents")
    click.echo("=" * 60)

    # 使用者
    users = User.query.order_by(User.id).all()
    click.echo(f"\n[Users] {len(users)} rows:")
    for u in users:
        click.echo(f"  ID: {u.id}, Username: {u.username}, Email: {u.email}")

    # 團隊
    teams = Team.query.order_by(Team.id).all()
    click.echo(f"\n[Teams] {len(teams)} rows:")
    for t in teams:
        click.echo(f"  ID: {t.id}, Name: {t.name}, Created by: {t.creator.username}")

    # 團隊成員
    members = TeamMember.query.order_by(TeamMember.id).all()
    click.echo(f"\n[Team members] {len(members)} rows:")
    for m in members:
        click.echo(f"  ID: {m.id}, Team: {m.team_id}, User: {m.user.username}, Role: {m.role.value}")

    # 任務
    tasks = Task.query.order_by(Task.id).all()
    click.echo(f"\n[Tasks] {len(tasks)} rows:")
    for t in tasks:
        scope = f"team {t.team_id}" if t.team_id else "personal"
        click.echo(f"  ID: {t.id}, Title: {t.title}, Status: {t.status}, Scope: {scope}")

    click.echo("\n" + "=" * 60)


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(view_db_command)
