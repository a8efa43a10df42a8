"""Tests for the approval workflow endpoints."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

from fastapi.testclient import TestClient

from coordinator.api.dependencies import get_approval_service
from coordinator.core.exceptions import (
    ConfigurationError,
    DelegationNotAllowedError,
    NoPendingRequestError,
    WorkflowDefinitionNotFoundError,
)
from coordinator.database.models import ApprovalRequest, WorkflowInstance
from coordinator.main import app
from coordinator.schemas.enums import ApprovalEntityType

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def sample_instance(**overrides) -> WorkflowInstance:
    values = dict(
        id=uuid4(),
        case_id=uuid4(),
        workflow_definition_id=uuid4(),
        entity_type="finding",
        entity_id=uuid4(),
        entity_title="Revenue concentration",
        status="in_progress",
        current_step=1,
        initiated_by="financial",
        initiated_at=T0,
        auto_approved=False,
    )
    values.update(overrides)
    return WorkflowInstance(**values)


class TestWorkflowEndpoints:
    """Test suite for workflow initiation and decisions."""

    def test_initiate_workflow(self, test_client: TestClient) -> None:
        instance = sample_instance()
        mock_service = AsyncMock()
        mock_service.initiate.return_value = instance
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        # Execute
        response = test_client.post(
            "/api/v1/approvals/workflows",
            json={
                "case_id": str(instance.case_id),
                "entity_type": "finding",
                "entity_id": str(instance.entity_id),
                "entity_title": "Revenue concentration",
                "initiated_by": "financial",
            },
        )

        # Assert
        assert response.status_code == 201
        assert response.json()["status"] == "in_progress"
        args = mock_service.initiate.await_args.args
        assert args[1] == ApprovalEntityType.FINDING
        assert args[5] is None

    def test_initiate_without_definition_is_404(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        mock_service.initiate.side_effect = WorkflowDefinitionNotFoundError(
            "No workflow definition for entity type executive_summary"
        )
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/approvals/workflows",
            json={
                "case_id": str(uuid4()),
                "entity_type": "executive_summary",
                "entity_id": str(uuid4()),
                "entity_title": "Board memo",
                "initiated_by": "orchestrator",
            },
        )

        # Assert
        assert response.status_code == 404

    def test_initiate_without_approvers_is_422(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        mock_service.initiate.side_effect = ConfigurationError("No approvers could be resolved")
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post(
            "/api/v1/approvals/workflows",
            json={
                "case_id": str(uuid4()),
                "entity_type": "analysis_plan",
                "entity_id": str(uuid4()),
                "entity_title": "Plan",
                "initiated_by": "orchestrator",
            },
        )

        # Assert
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "ConfigurationError"

    def test_approve(self, test_client: TestClient) -> None:
        instance = sample_instance(status="approved", completed_at=T0 + timedelta(hours=2))
        mock_service = AsyncMock()
        mock_service.approve.return_value = instance
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post(
            f"/api/v1/approvals/workflows/{instance.id}/approve",
            json={"approver_id": "morgan", "comments": "Numbers tie out"},
        )

        # Assert
        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        mock_service.approve.assert_awaited_once_with(instance.id, "morgan", "Numbers tie out")

    def test_approve_without_pending_request_is_409(self, test_client: TestClient) -> None:
        instance_id = uuid4()
        mock_service = AsyncMock()
        mock_service.approve.side_effect = NoPendingRequestError(instance_id, "parker")
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post(
            f"/api/v1/approvals/workflows/{instance_id}/approve",
            json={"approver_id": "parker"},
        )

        # Assert
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "NoPendingRequestError"

    def test_reject_requires_reason(self, test_client: TestClient) -> None:
        app.dependency_overrides[get_approval_service] = lambda: AsyncMock()

        response = test_client.post(
            f"/api/v1/approvals/workflows/{uuid4()}/reject",
            json={"approver_id": "dana"},
        )

        # Assert - should fail validation
        assert response.status_code == 422

    def test_delegate(self, test_client: TestClient) -> None:
        request = ApprovalRequest(
            id=uuid4(),
            workflow_instance_id=uuid4(),
            step_number=1,
            approver_id="sam",
            original_approver_id="dana",
            required=True,
            can_delegate=True,
            deadline=T0 + timedelta(hours=24),
            status="pending",
            created_at=T0,
        )
        mock_service = AsyncMock()
        mock_service.delegate.return_value = request
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post(
            f"/api/v1/approvals/workflows/{request.workflow_instance_id}/delegate",
            json={"approver_id": "dana", "delegate_to": "sam", "reason": "Travelling"},
        )

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["approver_id"] == "sam"
        assert data["original_approver_id"] == "dana"

    def test_delegation_not_allowed_is_409(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        mock_service.delegate.side_effect = DelegationNotAllowedError("Step 1 cannot be delegated")
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post(
            f"/api/v1/approvals/workflows/{uuid4()}/delegate",
            json={"approver_id": "devon", "delegate_to": "sam"},
        )

        # Assert
        assert response.status_code == 409

    def test_timeout_sweep(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        mock_service.process_timeouts.return_value = 3
        app.dependency_overrides[get_approval_service] = lambda: mock_service

        response = test_client.post("/api/v1/approvals/timeouts/sweep")

        # Assert
        assert response.status_code == 200
        assert response.json() == {"processed": 3, "escalated": 0}
