"""Project comments and contractor replies."""
from __future__ import annotations

from typing import List, Optional

from flask import current_app

from extensions import db
from models import Comment, Project
from utils.errors import ForbiddenError, NotFoundError, ValidationError
from utils.notifications import send_notification

MAX_COMMENT_LENGTH = 2000


def _clean_content(content) -> str:
    content = content.strip() if isinstance(content, str) else ""
    if not content:
        raise ValidationError("Comment content is required")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")
    return content


def create_comment(project_id: str, user, content, parent_comment_id: Optional[str] = None) -> Comment:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    content = _clean_content(content)

    if parent_comment_id:
        parent = db.session.get(Comment, parent_comment_id)
        if not parent or parent.project_id != project.id:
            raise ValidationError("Parent comment must belong to the same project")

    comment = Comment(project_id=project.id, user_id=user.id, parent_comment_id=parent_comment_id or None, content=content)
    db.session.add(comment)
    db.session.commit()
    current_app.logger.info(
        "Comment posted", extra={"project_id": project.id, "comment_id": comment.id, "reply": bool(parent_comment_id)}
    )

    if user.id != project.contractor_id:
        send_notification(
            project.contractor_id,
            "NEW_COMMENT",
            f"{user.name} commented on project '{project.title}'",
            sender_id=user.id,
            entity_id=comment.id,
            entity_type="Comment",
            metadata={"projectId": project.id},
        )
    return comment


def comments_for_project(project_id: str) -> List[Comment]:
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project not found")
    return Comment.query.filter_by(project_id=project_id).order_by(Comment.created_at.desc()).all()


def _owned_comment(comment_id: str, user) -> Comment:
    comment = db.session.get(Comment, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    if comment.user_id != user.id and not user.is_admin:
        raise ForbiddenError("You can only change your own comments")
    return comment


def update_comment(comment_id: str, user, content) -> Comment:
    comment = _owned_comment(comment_id, user)
    comment.content = _clean_content(content)
    db.session.commit()
    return comment


def delete_comment(comment_id: str, user) -> None:
    """Delete a comment together with the replies made to it."""
    comment = _owned_comment(comment_id, user)
    Comment.query.filter_by(parent_comment_id=comment.id).delete(synchronize_session=False)
    db.session.delete(comment)
    db.session.commit()
    current_app.logger.info("Comment deleted", extra={"comment_id": comment_id, "user_id": user.id})
