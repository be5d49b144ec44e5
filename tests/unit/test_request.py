"""Test TopicNamespace.request correlation, settlement and timeouts."""

from __future__ import annotations

import asyncio

import pytest

from topicbus.core.errors import RequestFailedError, RequestTimeoutError
from topicbus.topics.namespace import TopicNamespace


class TestRequestResolves:
    async def test_request_namespaced_topic(self, users):
        users.on("find", lambda ns, uid: {"id": "trever"})

        user = await users.request("find", "trever")

        assert user == {"id": "trever"}

    async def test_request_with_async_handler(self, users):
        async def find(ns, uid):
            await asyncio.sleep(0)
            return {"id": uid, "name": "Trever"}

        users.on("find", find)

        user = await users.request("find", "trever")

        assert user["name"] == "Trever"

    async def test_request_publishes_payload(self, users, mediator):
        seen = []

        def create(ns, user):
            seen.append(user)
            return user

        users.on("create", create)

        await users.request("create", {"id": "trever", "name": "Trever"})

        assert seen == [{"id": "trever", "name": "Trever"}]
        assert mediator.get_history(users.get_topic("create")) == [
            (users.get_topic("create"), {"id": "trever", "name": "Trever"})
        ]

    async def test_explicit_uid_overrides_payload(self, users):
        users.on("create", lambda ns, user: "job-7")

        result = await users.request("create", {"id": "trever"}, uid="job-7")

        assert result == "job-7"

    async def test_numeric_uid_correlates(self, users, mediator):
        future = users.request("find", None, uid=0)

        assert mediator.subscriber_count("done:wfm:cloud:user:find:0") == 1
        assert mediator.subscriber_count("done:wfm:cloud:user:find") == 0

        mediator.publish(users.get_topic("find:0", "done"), {"id": 0})
        assert await future == {"id": 0}

    async def test_numeric_payload_id_and_result_id_match(self, users):
        users.on("find", lambda ns, query: {"id": query["id"], "name": "zero"})

        user = await users.request("find", {"id": 0})

        assert user["name"] == "zero"

    async def test_uncorrelated_request(self, users):
        users.on("count", lambda ns, p: 3)

        assert await users.request("count") == 3

    async def test_each_correlated_request_gets_its_own_result(self, users):
        async def find(ns, uid):
            # Finish in reverse order of arrival
            await asyncio.sleep(0.01 if uid == "a" else 0)
            return {"id": uid}

        users.on("find", find)

        a, b = await asyncio.gather(
            users.request("find", "a"), users.request("find", "b"),
        )

        assert a == {"id": "a"}
        assert b == {"id": "b"}


class TestRequestRejects:
    async def test_error_with_id_rejects_request(self, users):
        def find(ns, uid):
            error = LookupError(f"no user {uid}")
            error.id = uid
            raise error

        users.on("find", find)

        with pytest.raises(LookupError, match="no user trever"):
            await users.request("find", "trever")

    async def test_non_exception_error_payload_wrapped(self, users, mediator):
        future = users.request("find", "trever")
        mediator.publish(users.get_topic("find:trever", "error"), "not found")

        with pytest.raises(RequestFailedError) as info:
            await future
        assert info.value.payload == "not found"
        assert info.value.topic == "wfm:cloud:user:find"

    async def test_error_without_id_does_not_settle_correlated_request(self, users, drain):
        def find(ns, uid):
            raise LookupError("no id attached")

        users.on("find", find)

        future = users.request("find", "trever")
        await drain()

        assert not future.done()
        users.unsubscribe_all()
        assert future.cancelled()


class TestRequestListeners:
    async def test_listeners_released_after_settle(self, users, mediator):
        users.on("find", lambda ns, uid: {"id": uid})

        await users.request("find", "trever")

        assert users.pending_requests == 0
        assert len(users.subscriptions) == 1
        assert mediator.subscriber_count("done:wfm:cloud:user:find:trever") == 0
        assert mediator.subscriber_count("error:wfm:cloud:user:find:trever") == 0

    async def test_second_outcome_ignored(self, users, mediator):
        future = users.request("find", "trever")
        mediator.publish(users.get_topic("find:trever", "done"), {"id": "trever"})
        mediator.publish(users.get_topic("find:trever", "error"), LookupError())

        assert await future == {"id": "trever"}

    async def test_cancelling_future_releases_listeners(self, users, drain):
        future = users.request("find", "trever")
        assert len(users.subscriptions) == 2

        future.cancel()
        await drain()

        assert users.subscriptions == []
        assert users.pending_requests == 0

    async def test_unsubscribe_all_cancels_pending(self, users):
        future = users.request("find", "trever")

        assert users.unsubscribe_all() == 2
        assert future.cancelled()
        assert users.pending_requests == 0

    def test_request_requires_running_loop(self, users):
        with pytest.raises(RuntimeError):
            users.request("find", "trever")


class TestRequestTimeout:
    async def test_timeout_rejects_and_releases(self, users):
        with pytest.raises(RequestTimeoutError) as info:
            await users.request("find", "trever", timeout=0.01)

        assert info.value.timeout == 0.01
        assert info.value.topic == "wfm:cloud:user:find"
        assert users.subscriptions == []

    async def test_namespace_default_timeout(self, mediator):
        ns = TopicNamespace(mediator, ["wfm"], "user", request_timeout=0.01)

        with pytest.raises(RequestTimeoutError):
            await ns.request("find", "trever")

    async def test_explicit_none_disables_default_timeout(self, mediator):
        ns = TopicNamespace(mediator, ["wfm"], "user", request_timeout=0.01)
        future = ns.request("find", "trever", timeout=None)
        await asyncio.sleep(0.03)

        assert not future.done()
        ns.unsubscribe_all()

    async def test_settled_request_does_not_time_out(self, users):
        users.on("find", lambda ns, uid: {"id": uid})

        user = await users.request("find", "trever", timeout=0.05)
        await asyncio.sleep(0.1)

        assert user == {"id": "trever"}
