"""
Tests for the question editor autosave pipeline.

Time is driven by the ManualScheduler fixture; remote saves complete only
when the test resolves them through the FakeQuestionServer fixture.
"""
import pytest

from app.core.lifecycle.autosave import AutosavePipeline, QuestionBuffer, SaveStatus

QUESTION = {
    "id": "q1",
    "text": "v0",
    "options": [{"id": "o1", "text": "a"}, {"id": "o2", "text": "b"}],
    "correct_option_index": 0,
}


@pytest.fixture
def pipeline(question_server, scheduler):
    pipeline = AutosavePipeline(
        question_server.save,
        question_server.delete,
        scheduler=scheduler,
        debounce=1.5,
    )
    pipeline.register(QUESTION)
    return pipeline


class TestQuestionBuffer:
    """Tests for the editor helpers on a question buffer."""

    def test_from_question_copies_fields(self):
        buffer = QuestionBuffer.from_question(QUESTION)

        assert buffer.question_id == "q1"
        assert buffer.options == QUESTION["options"]
        assert buffer.options[0] is not QUESTION["options"][0]

    def test_add_option_uses_temporary_id(self):
        """Test that new options get a temp- id until the server assigns one."""
        buffer = QuestionBuffer(question_id="q1")

        option_id = buffer.add_option("first")

        assert option_id.startswith("temp-")
        assert buffer.correct_option_index == 0

    def test_remove_option_before_correct_shifts_index(self):
        buffer = QuestionBuffer.from_question(
            {**QUESTION, "options": [{"text": "a"}, {"text": "b"}, {"text": "c"}],
             "correct_option_index": 2}
        )

        buffer.remove_option(0)

        assert buffer.correct_option_index == 1
        assert buffer.options[buffer.correct_option_index]["text"] == "c"

    def test_remove_correct_option_resets_to_first(self):
        buffer = QuestionBuffer.from_question({**QUESTION, "correct_option_index": 1})

        buffer.remove_option(1)

        assert buffer.correct_option_index == 0

    def test_set_correct_option_out_of_range(self):
        buffer = QuestionBuffer.from_question(QUESTION)

        with pytest.raises(IndexError):
            buffer.set_correct_option(5)


class TestDebounce:
    """Tests for the trailing-edge debounce."""

    async def test_edit_marks_dirty_and_saves_after_quiet_period(
        self, pipeline, question_server, scheduler
    ):
        """Test that a save fires once the debounce elapses after the last edit."""
        pipeline.edit("q1", text="v1")
        assert pipeline.status("q1") == SaveStatus.DIRTY

        await scheduler.advance_to(1.4)
        assert question_server.saves == []

        await scheduler.advance_to(1.5)
        assert len(question_server.saves) == 1
        assert question_server.saves[0]["payload"]["text"] == "v1"
        assert pipeline.status("q1") == SaveStatus.SAVING

        question_server.complete_save(0)
        await scheduler.settle()
        assert pipeline.status("q1") == SaveStatus.SAVED

    async def test_rapid_edits_coalesce_into_one_save(
        self, pipeline, question_server, scheduler
    ):
        """Test that each edit restarts the timer and only the last content is sent."""
        pipeline.edit("q1", text="v1")
        await scheduler.advance_to(1.0)
        pipeline.edit("q1", text="v2")
        await scheduler.advance_to(2.0)
        pipeline.apply_edit("q1", lambda b: b.set_text("v3"))

        await scheduler.advance_to(3.4)
        assert question_server.saves == []

        await scheduler.advance_to(3.5)
        assert [call["payload"]["text"] for call in question_server.saves] == ["v3"]

    async def test_server_option_ids_adopted(self, pipeline, question_server, scheduler):
        """Test that temporary option ids are replaced by the saved ones."""
        temp_id = pipeline.apply_edit("q1", lambda b: b.add_option("c"))
        await scheduler.advance_to(1.5)

        payload = question_server.saves[0]["payload"]
        assert payload["options"][2]["id"] == temp_id
        saved_options = [dict(o) for o in payload["options"]]
        saved_options[2]["id"] = "server-3"
        question_server.complete_save(0, {"id": "q1", "options": saved_options})
        await scheduler.settle()

        assert pipeline.buffer("q1").options[2]["id"] == "server-3"


class TestSaveRace:
    """Tests for at-most-one in-flight save and stale completion."""

    async def test_slow_save_does_not_mark_newer_edit_saved(
        self, pipeline, question_server, scheduler
    ):
        """Test the edit/save/edit/complete interleaving.

        t=0 edit, t=1.5 save starts, t=1.6 edit again, t=2.0 first save
        completes: at t=2.1 the question is still dirty and the t=1.6 content
        is saved next.
        """
        pipeline.edit("q1", text="first")
        await scheduler.advance_to(1.5)
        assert pipeline.status("q1") == SaveStatus.SAVING

        await scheduler.advance_to(1.6)
        pipeline.edit("q1", text="second")

        await scheduler.advance_to(2.0)
        question_server.complete_save(0)
        await scheduler.advance_to(2.1)

        assert pipeline.status("q1") == SaveStatus.DIRTY
        assert len(question_server.saves) == 1
        assert scheduler.pending_timers() == [pytest.approx(3.1)]

        await scheduler.advance_to(3.2)
        assert len(question_server.saves) == 2
        assert question_server.saves[1]["payload"]["text"] == "second"

        question_server.complete_save(1)
        await scheduler.settle()
        assert pipeline.status("q1") == SaveStatus.SAVED

    async def test_timer_during_flight_queues_follow_up(
        self, pipeline, question_server, scheduler
    ):
        """Test that a second save waits for the first to finish."""
        pipeline.edit("q1", text="first")
        await scheduler.advance_to(1.5)
        pipeline.edit("q1", text="second")

        # The second debounce elapses while the first save is still running.
        await scheduler.advance_to(3.0)
        assert len(question_server.saves) == 1

        question_server.complete_save(0)
        await scheduler.settle()

        assert len(question_server.saves) == 2
        assert question_server.saves[1]["payload"]["text"] == "second"
        assert pipeline.status("q1") == SaveStatus.SAVING

    async def test_questions_save_independently(
        self, pipeline, question_server, scheduler
    ):
        pipeline.register({**QUESTION, "id": "q2"})
        pipeline.edit("q1", text="one")
        pipeline.edit("q2", text="two")

        await scheduler.advance_to(1.5)

        assert sorted(call["question_id"] for call in question_server.saves) == [
            "q1",
            "q2",
        ]


class TestSaveFailure:
    """Tests for failed saves and retry."""

    async def test_failure_keeps_buffer_and_sets_error(
        self, pipeline, question_server, scheduler
    ):
        """Test that a failed save is not reverted and reports error."""
        pipeline.edit("q1", text="unsaved")
        await scheduler.advance_to(1.5)

        question_server.fail_save(0, ConnectionError("offline"))
        await scheduler.settle()

        assert pipeline.status("q1") == SaveStatus.ERROR
        assert pipeline.buffer("q1").text == "unsaved"
        assert isinstance(pipeline.last_error("q1"), ConnectionError)

    async def test_retry_resaves_after_debounce(
        self, pipeline, question_server, scheduler
    ):
        pipeline.edit("q1", text="unsaved")
        await scheduler.advance_to(1.5)
        question_server.fail_save(0, ConnectionError("offline"))
        await scheduler.settle()

        pipeline.retry("q1")
        assert pipeline.status("q1") == SaveStatus.DIRTY
        await scheduler.advance_to(3.0)

        assert len(question_server.saves) == 2
        question_server.complete_save(1)
        await scheduler.settle()
        assert pipeline.status("q1") == SaveStatus.SAVED
        assert pipeline.last_error("q1") is None

    async def test_failure_superseded_by_newer_edit_stays_dirty(
        self, pipeline, question_server, scheduler
    ):
        """Test that a stale failure does not hide a pending newer edit."""
        pipeline.edit("q1", text="first")
        await scheduler.advance_to(1.5)
        pipeline.edit("q1", text="second")

        question_server.fail_save(0, ConnectionError("offline"))
        await scheduler.settle()

        assert pipeline.status("q1") == SaveStatus.DIRTY
        await scheduler.advance_to(3.0)
        assert question_server.saves[1]["payload"]["text"] == "second"


class TestFlushAndStatus:
    """Tests for flush, aggregate status and listeners."""

    async def test_flush_skips_debounce(self, pipeline, question_server, scheduler):
        pipeline.edit("q1", text="now")

        assert pipeline.flush() == ["q1"]
        await scheduler.settle()

        assert len(question_server.saves) == 1
        assert scheduler.pending_timers() == []

    async def test_aggregate_status_priority(self, pipeline, question_server, scheduler):
        """Test that saving outranks dirty, which outranks error and saved."""
        pipeline.register({**QUESTION, "id": "q2"})
        assert pipeline.aggregate_status() == SaveStatus.IDLE

        pipeline.edit("q1", text="x")
        assert pipeline.aggregate_status() == SaveStatus.DIRTY

        await scheduler.advance_to(1.5)
        pipeline.edit("q2", text="y")
        assert pipeline.aggregate_status() == SaveStatus.SAVING

        question_server.fail_save(0, ConnectionError("offline"))
        await scheduler.settle()
        assert pipeline.aggregate_status() == SaveStatus.DIRTY

        await scheduler.advance_to(3.0)
        question_server.complete_save(1)
        await scheduler.settle()
        assert pipeline.statuses() == {"q1": SaveStatus.ERROR, "q2": SaveStatus.SAVED}
        assert pipeline.aggregate_status() == SaveStatus.ERROR

    async def test_listener_sees_each_status_change(
        self, pipeline, question_server, scheduler
    ):
        seen = []
        remove = pipeline.add_listener(lambda qid, status: seen.append(status))

        pipeline.edit("q1", text="a")
        pipeline.edit("q1", text="b")
        await scheduler.advance_to(1.5)
        question_server.complete_save(0)
        await scheduler.settle()
        remove()
        pipeline.edit("q1", text="c")

        assert seen == [SaveStatus.DIRTY, SaveStatus.SAVING, SaveStatus.SAVED]


class TestOptimisticDelete:
    """Tests for optimistic question removal."""

    async def test_delete_removes_immediately(self, pipeline, question_server, scheduler):
        pipeline.register({**QUESTION, "id": "q2"})
        task = scheduler.spawn(pipeline.delete_question("q1"))
        await scheduler.settle()

        assert pipeline.question_ids() == ["q2"]

        question_server.deletes[0]["future"].set_result(None)
        result = await task
        assert result.ok
        assert pipeline.question_ids() == ["q2"]

    async def test_failed_delete_restores_position(
        self, pipeline, question_server, scheduler
    ):
        """Test that a failed delete puts the question back where it was."""
        pipeline.register({**QUESTION, "id": "q2"})
        pipeline.register({**QUESTION, "id": "q3"})
        pipeline.edit("q2", text="kept")

        task = scheduler.spawn(pipeline.delete_question("q2"))
        await scheduler.settle()
        assert pipeline.question_ids() == ["q1", "q3"]

        question_server.deletes[0]["future"].set_exception(ConnectionError("offline"))
        result = await task

        assert not result.ok
        assert isinstance(result.error, ConnectionError)
        assert pipeline.question_ids() == ["q1", "q2", "q3"]
        assert pipeline.buffer("q2").text == "kept"

        await scheduler.advance_to(10.0)
        assert [call["question_id"] for call in question_server.saves] == ["q2"]
        assert question_server.saves[0]["payload"]["text"] == "kept"
        question_server.complete_save(0)
        await scheduler.settle()
        assert pipeline.status("q2") == SaveStatus.SAVED

    async def test_delete_cancels_pending_save(
        self, pipeline, question_server, scheduler
    ):
        pipeline.edit("q1", text="never saved")
        task = scheduler.spawn(pipeline.delete_question("q1"))
        await scheduler.settle()
        question_server.deletes[0]["future"].set_result(None)
        await task

        await scheduler.advance_to(5.0)
        assert question_server.saves == []
