from newsletter.db.models import DeliveryTask
from newsletter.db.repositories import (
    DeliveryTaskRepository,
    NewsletterIssueRepository,
    SubscriptionRepository,
    SubscriptionTokenRepository,
    UserRepository,
)


def test_repository_crud_helpers_cover_all_entities(session_factory):
    with session_factory() as db:
        user_repo = UserRepository(db)
        subscription_repo = SubscriptionRepository(db)
        token_repo = SubscriptionTokenRepository(db)
        issue_repo = NewsletterIssueRepository(db)
        task_repo = DeliveryTaskRepository(db)

        user = user_repo.create(username="admin", api_token_hash="a" * 64)
        subscriber = subscription_repo.create(email="reader@example.com", name="Reader")
        token_repo.create(subscription_token="tok123", subscriber_id=subscriber.id)
        issue = issue_repo.create(title="Issue #1", text_content="text", html_content="<p>html</p>")
        task_repo.create(newsletter_issue_id=issue.newsletter_issue_id, subscriber_email=subscriber.email)
        db.commit()

        assert user_repo.get(user.user_id).username == "admin"
        assert user_repo.get_by_token_hash("a" * 64).user_id == user.user_id
        assert user_repo.get_by_token_hash("b" * 64) is None
        assert subscription_repo.get_by_email("reader@example.com").id == subscriber.id
        assert token_repo.get_subscriber_id("tok123") == subscriber.id
        assert token_repo.get_subscriber_id("missing") is None
        assert task_repo.count_for_issue(issue.newsletter_issue_id) == 1
        assert issue_repo.count() == 1
        assert len(subscription_repo.list()) == 1


def test_new_subscribers_start_pending_and_confirm_flips_status(session_factory):
    with session_factory() as db:
        repo = SubscriptionRepository(db)
        subscriber = repo.create(email="pending@example.com", name="Pending")
        db.commit()
        assert subscriber.status == "pending_confirmation"
        assert repo.count_confirmed() == 0

        repo.confirm(subscriber.id)
        db.commit()

    with session_factory() as db:
        repo = SubscriptionRepository(db)
        assert repo.get(subscriber.id).status == "confirmed"
        assert repo.count_confirmed() == 1


def test_list_with_pending_counts_reports_queue_depth_per_issue(session_factory):
    with session_factory() as db:
        issue_repo = NewsletterIssueRepository(db)
        first = issue_repo.create(title="First", text_content="t", html_content="h")
        second = issue_repo.create(title="Second", text_content="t", html_content="h")
        for email in ("a@example.com", "b@example.com"):
            db.add(DeliveryTask(newsletter_issue_id=first.newsletter_issue_id, subscriber_email=email))
        db.commit()

        counts = {issue.title: pending for issue, pending in issue_repo.list_with_pending_counts()}

    assert counts == {"First": 2, "Second": 0}


def test_delete_removes_entity(session_factory):
    with session_factory() as db:
        repo = SubscriptionRepository(db)
        subscriber = repo.create(email="gone@example.com", name="Gone")
        repo.delete(subscriber)
        db.commit()

        assert repo.get_by_email("gone@example.com") is None
