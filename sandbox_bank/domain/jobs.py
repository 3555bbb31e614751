"""Job engine - drives access linking and refresh through challenge stages"""

from dataclasses import dataclass, field
from typing import List, Optional

from sandbox_bank.domain.catalog import AccessCatalog
from sandbox_bank.domain.challenges import (
    CHALLENGE_PIN,
    previous_value,
    unmet_challenges,
    without_challenge,
)
from sandbox_bank.domain.exceptions import AuthenticationError, ResourceNotFoundError
from sandbox_bank.domain.identity import IdentityStore
from sandbox_bank.domain.models import (
    Access,
    ChallengeAnswer,
    Job,
    JobAction,
    JobStage,
    Problem,
)
from sandbox_bank.domain.problems import (
    UNKNOWN_PROVIDER,
    OverlayMode,
    overlay_stage_problems,
    wrong_pin_problems,
)
from sandbox_bank.infrastructure.observability.logging import log_job_progress
from sandbox_bank.infrastructure.observability.metrics import record_job_transition
from sandbox_bank.infrastructure.store.memory import Store


@dataclass
class ChallengeField:
    """Unanswered challenge with the last value the caller supplied for it"""

    id: str
    previous: Optional[str] = None


@dataclass
class JobStatus:
    """Read model of a job as reported to API consumers"""

    finished: bool
    stage: JobStage
    uri: str
    challenges: List[ChallengeField] = field(default_factory=list)
    problems: List[Problem] = field(default_factory=list)
    access: Optional[Access] = None


class JobEngine:
    """
    Access-linking/refresh state machine.

    Stages only move forward:
        unauthenticated -> challenge (repeats while answers are missing)
                        -> imported (terminal, success)
        unauthenticated -> problem  (terminal, unknown provider)

    A finished job is immutable; further answers are ignored.
    """

    def __init__(self, store: Store, catalog: AccessCatalog, identity: IdentityStore):
        self.store = store
        self.catalog = catalog
        self.identity = identity

    def create_job(
        self,
        user_id: str,
        provider_id: str,
        answers: List[ChallengeAnswer],
        action: JobAction = JobAction.CREATE,
    ) -> Job:
        """
        Start a job and run its first progression round.

        Refresh jobs are pre-seeded with the answers the user asked to have
        remembered for this provider.
        """
        job = Job(
            id=self.store.ids.next_str(),
            user_id=user_id,
            provider_id=provider_id,
            action=action,
        )
        if action == JobAction.REFRESH:
            job.supplied_answers.extend(self.identity.stored_answers(user_id, provider_id))

        with self.store.jobs.locked(job.id):
            details = self.catalog.get(provider_id)
            if details is None:
                job.stage = JobStage.PROBLEM
                job.problems.append(Problem(code=UNKNOWN_PROVIDER))
                job.finished = True
                record_job_transition(action.value, job.stage.value)
                log_job_progress(job.id, user_id, provider_id, job.stage.value, [], [UNKNOWN_PROVIDER])
            else:
                job.access_details = details
                self.progress_job(job, answers)
            self.store.jobs.set(job.id, job)

        return job

    def get_job(self, job_id: str, user_id: str | None = None) -> Job:
        """
        Fetch a job, optionally checking ownership.

        Raises:
            ResourceNotFoundError: Unknown job ID
            AuthenticationError: Job belongs to another user
        """
        job = self.store.jobs.get(job_id)
        if job is None:
            raise ResourceNotFoundError(f"job {job_id} not found")
        if user_id is not None and job.user_id != user_id:
            raise AuthenticationError("authentication_failed")
        return job

    def answer_job(self, job_id: str, user_id: str, answers: List[ChallengeAnswer]) -> Job:
        """Submit answers to a job and persist the outcome atomically"""
        self.get_job(job_id, user_id)
        with self.store.jobs.locked(job_id):
            job = self.get_job(job_id, user_id)
            self.progress_job(job, answers)
            self.store.jobs.set(job.id, job)
        return job

    def progress_job(self, job: Job, answers: List[ChallengeAnswer]) -> None:
        """
        Run one progression round on a job in place.

        Requirements:
        - Finished jobs are left untouched
        - store=True answers are remembered for the provider
        - Every challenge in the catalog must have a matching supplied answer
        - A missing or wrong PIN reports user_wrong_pin plus a field reset hint
          and discards supplied PIN values so the caller has to resupply them
        - Create jobs release the provider's fixtures on success; refresh jobs only validate
        """
        if job.finished or job.access_details is None:
            return

        details = job.access_details
        self.identity.update_stored_answers(job.user_id, job.provider_id, answers)

        job.supplied_answers.extend(answers)
        job.problems = []

        unmet = unmet_challenges(details.challenge_map, job.supplied_answers)
        job.needs_answers = bool(unmet)

        if CHALLENGE_PIN in unmet:
            job.problems.extend(wrong_pin_problems(CHALLENGE_PIN))
            job.supplied_answers = without_challenge(job.supplied_answers, CHALLENGE_PIN)

        if job.needs_answers:
            job.stage = JobStage.CHALLENGE
        else:
            job.stage = JobStage.IMPORTED
            job.finished = True
            if job.action == JobAction.CREATE:
                self.identity.import_access(job.user_id, details)

        record_job_transition(job.action.value, job.stage.value)
        log_job_progress(
            job.id,
            job.user_id,
            job.provider_id,
            job.stage.value,
            unmet,
            [p.code for p in job.problems],
        )

    def status(self, job: Job, mode: OverlayMode = OverlayMode.REPLACE) -> JobStatus:
        """Build the status view, layering configured stage problems on top"""
        status = JobStatus(
            finished=job.finished,
            stage=job.stage,
            uri=job.uri,
            problems=overlay_stage_problems(job.access_details, job.stage, job.problems, mode),
        )

        details = job.access_details
        if job.needs_answers and details is not None:
            status.challenges = [
                ChallengeField(id=cid, previous=previous_value(job.supplied_answers, cid))
                for cid in unmet_challenges(details.challenge_map, job.supplied_answers)
            ]

        if job.stage == JobStage.IMPORTED and details is not None:
            status.access = details.access

        return status
