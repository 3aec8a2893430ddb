from datetime import datetime
from extensions import db


class Plan(db.Model):
    """A user's plan. Creation is gated by the entitlement resolver (plan count, plan duration)."""
    __tablename__ = 'plans'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tasks = db.relationship('Task', backref='plan', lazy='select', cascade='all, delete-orphan',
                            order_by='Task.date')

    def __repr__(self):
        return f'<Plan {self.id} "{self.title}" user={self.user_id}>'


class Task(db.Model):
    """A dated task inside a plan."""
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('plans.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    date = db.Column(db.Date, nullable=True, index=True)
    priority = db.Column(db.String(20), nullable=True)
    estimated_minutes = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='Pending')

    def __repr__(self):
        return f'<Task {self.id} "{self.title}" plan={self.plan_id}>'
