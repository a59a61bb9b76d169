"""
单元测试用于测试取消工具与事件通道

测试覆盖：
- cancellable / iterate_cancellable / raise_if_cancelled
- EventChannel 有界队列、关闭、错误传递与取消
"""

import asyncio

import pytest

from analyst.agent.channel import AgentRun, EventChannel
from analyst.agent.types import AnswerChunkEvent, ThinkingEvent
from analyst.errors import RunCancelled
from analyst.utils.cancellation import (
    cancellable,
    iterate_cancellable,
    raise_if_cancelled,
)


class TestRaiseIfCancelled:
    """测试 raise_if_cancelled"""

    def test_no_token(self):
        """测试没有 token 时不抛出"""
        raise_if_cancelled(None)

    def test_unset_token(self):
        """测试未设置的 token 不抛出"""
        raise_if_cancelled(asyncio.Event())

    def test_set_token(self):
        """测试已设置的 token 抛出 RunCancelled"""
        token = asyncio.Event()
        token.set()
        with pytest.raises(RunCancelled):
            raise_if_cancelled(token)

    def test_run_cancelled_is_not_an_exception(self):
        """测试 RunCancelled 不会被 except Exception 捕获"""
        assert issubclass(RunCancelled, asyncio.CancelledError)
        assert not issubclass(RunCancelled, Exception)


class TestCancellable:
    """测试 cancellable"""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        """测试正常返回结果"""

        async def work():
            return 42

        assert await cancellable(work(), asyncio.Event()) == 42
        assert await cancellable(work(), None) == 42

    @pytest.mark.asyncio
    async def test_propagates_errors(self):
        """测试操作异常原样抛出"""

        async def fail():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await cancellable(fail(), asyncio.Event())

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        """测试 token 已设置时不执行操作"""
        token = asyncio.Event()
        token.set()
        ran = False

        async def work():
            nonlocal ran
            ran = True

        with pytest.raises(RunCancelled):
            await cancellable(work(), token)
        assert not ran

    @pytest.mark.asyncio
    async def test_interrupts_pending_operation(self):
        """测试取消中断挂起的操作并等待其清理"""
        token = asyncio.Event()
        cleaned_up = False

        async def hang():
            nonlocal cleaned_up
            try:
                await asyncio.Event().wait()
            finally:
                cleaned_up = True

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.set()

        asyncio.create_task(cancel_soon())
        with pytest.raises(RunCancelled, match="stop"):
            await cancellable(hang(), token, "stop")
        assert cleaned_up


class TestIterateCancellable:
    """测试 iterate_cancellable"""

    @pytest.mark.asyncio
    async def test_yields_all_items(self):
        """测试完整迭代"""

        async def gen():
            for i in range(3):
                yield i

        items = [i async for i in iterate_cancellable(gen(), asyncio.Event())]
        assert items == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stops_between_chunks(self):
        """测试在片段之间取消"""
        token = asyncio.Event()
        closed = False

        async def gen():
            nonlocal closed
            try:
                for i in range(10):
                    yield i
            finally:
                closed = True

        items = []
        with pytest.raises(RunCancelled):
            async for i in iterate_cancellable(gen(), token):
                items.append(i)
                if i == 1:
                    token.set()

        assert items == [0, 1]
        assert closed


class TestEventChannel:
    """测试 EventChannel"""

    @pytest.mark.asyncio
    async def test_delivers_in_order_then_stops(self):
        """测试按顺序投递并在关闭后结束"""
        channel = EventChannel(maxsize=4)
        await channel.send(ThinkingEvent(message="a"))
        await channel.send(AnswerChunkEvent(text="b"))
        await channel.close()

        events = [e async for e in channel]
        assert events == [ThinkingEvent(message="a"), AnswerChunkEvent(text="b")]

    @pytest.mark.asyncio
    async def test_error_raised_once_after_events(self):
        """测试关闭时的错误在事件之后抛出一次"""
        channel = EventChannel(maxsize=4)
        await channel.send(ThinkingEvent(message="a"))
        await channel.close(RuntimeError("boom"))

        assert await channel.__anext__() == ThinkingEvent(message="a")
        with pytest.raises(RuntimeError, match="boom"):
            await channel.__anext__()
        with pytest.raises(StopAsyncIteration):
            await channel.__anext__()

    @pytest.mark.asyncio
    async def test_bounded_send_waits_for_consumer(self):
        """测试队列满时生产者等待"""
        channel = EventChannel(maxsize=1)
        await channel.send(AnswerChunkEvent(text="1"))

        blocked = asyncio.create_task(channel.send(AnswerChunkEvent(text="2")))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        assert (await channel.__anext__()).text == "1"
        await blocked
        assert (await channel.__anext__()).text == "2"

    @pytest.mark.asyncio
    async def test_nothing_after_cancellation(self):
        """测试取消后不再产出事件"""
        token = asyncio.Event()
        channel = EventChannel(maxsize=4, cancellation_token=token)
        await channel.send(ThinkingEvent(message="queued"))
        token.set()

        assert [e async for e in channel] == []
        with pytest.raises(RunCancelled):
            await channel.send(ThinkingEvent(message="late"))

    @pytest.mark.asyncio
    async def test_send_after_close_is_an_error(self):
        """测试关闭后发送报错"""
        channel = EventChannel()
        await channel.close()
        with pytest.raises(RuntimeError):
            await channel.send(ThinkingEvent())


class TestAgentRun:
    """测试 AgentRun"""

    @pytest.mark.asyncio
    async def test_starts_producer_lazily(self):
        """测试首次拉取时才启动生产者"""
        started = False

        async def producer(channel: EventChannel) -> None:
            nonlocal started
            started = True
            await channel.send(ThinkingEvent(message="hi"))
            await channel.close()

        run = AgentRun(producer, EventChannel())
        await asyncio.sleep(0)
        assert not started

        assert [e async for e in run] == [ThinkingEvent(message="hi")]
        assert started

    @pytest.mark.asyncio
    async def test_context_exit_cancels_producer(self):
        """测试退出上下文时取消生产者"""
        producer_cancelled = False

        async def producer(channel: EventChannel) -> None:
            nonlocal producer_cancelled
            await channel.send(ThinkingEvent(message="first"))
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                producer_cancelled = True
                raise

        async with AgentRun(producer, EventChannel()) as run:
            assert (await run.__anext__()).message == "first"

        assert producer_cancelled

    @pytest.mark.asyncio
    async def test_break_cancels_producer(self):
        """测试 break 退出 async for 后生产者被取消"""
        producer_cancelled = asyncio.Event()

        async def producer(channel: EventChannel) -> None:
            try:
                for i in range(100):
                    await channel.send(ThinkingEvent(message=str(i)))
            except asyncio.CancelledError:
                producer_cancelled.set()
                raise

        run = AgentRun(producer, EventChannel(maxsize=2))
        async for event in run:
            assert event.message == "0"
            break

        await asyncio.wait_for(producer_cancelled.wait(), timeout=1)
        assert run._task.done()
