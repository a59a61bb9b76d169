"""
单元测试用于测试 message_history.py 模块

测试覆盖：
- Message 数据类
- SelectedMessagesSchema Pydantic 模型
- hash_query
- MessageHistory 类的所有方法
"""

import asyncio
import hashlib
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from analyst.errors import RunCancelled
from analyst.model.llm import GatewayResponse
from analyst.utils.message_history import (
    Message,
    MessageHistory,
    SelectedMessagesSchema,
    hash_query,
)


def make_gateway(summary: str = "Summary", structured=None) -> MagicMock:
    gateway = MagicMock()
    gateway.invoke = AsyncMock(return_value=GatewayResponse(text=summary))
    gateway.invoke_structured = AsyncMock(return_value=structured)
    return gateway


def seeded_history(gateway, count: int) -> MessageHistory:
    history = MessageHistory(gateway)
    history.messages = [
        Message(id=i, query=f"Query {i}", answer=f"Answer {i}", summary=f"Summary {i}")
        for i in range(count)
    ]
    return history


# ======================================================================
# Message 数据类测试
# ======================================================================


class TestMessage:
    """测试 Message 数据类"""

    def test_message_creation(self):
        """测试创建 Message 对象"""
        message = Message(
            id=0,
            query="What was Apple's revenue last quarter?",
            answer="Apple reported revenue of $94.9B.",
            summary="Apple (AAPL) quarterly revenue of $94.9B.",
        )

        assert message.id == 0
        assert message.query == "What was Apple's revenue last quarter?"
        assert message.answer == "Apple reported revenue of $94.9B."
        assert message.summary == "Apple (AAPL) quarterly revenue of $94.9B."

    def test_message_with_empty_strings(self):
        """测试带有空字符串的 Message"""
        message = Message(id=1, query="", answer="", summary="")
        assert message.id == 1
        assert message.query == ""


# ======================================================================
# SelectedMessagesSchema 测试
# ======================================================================


class TestSelectedMessagesSchema:
    """测试 SelectedMessagesSchema Pydantic 模型"""

    def test_valid_schema(self):
        """测试创建有效的 schema"""
        schema = SelectedMessagesSchema(message_ids=[0, 1, 2])
        assert schema.message_ids == [0, 1, 2]

    def test_empty_message_ids(self):
        """测试空的消息 ID 列表"""
        schema = SelectedMessagesSchema(message_ids=[])
        assert schema.message_ids == []

    def test_missing_message_ids_field(self):
        """测试缺少必需字段"""
        with pytest.raises(ValidationError):
            SelectedMessagesSchema()

    def test_invalid_message_ids_type(self):
        """测试无效的消息 ID 类型"""
        # Pydantic v2 会自动转换字符串数字，所以需要使用非数字字符串
        with pytest.raises(ValidationError):
            SelectedMessagesSchema(message_ids=[0, "abc", 2])


# ======================================================================
# hash_query 测试
# ======================================================================


class TestHashQuery:
    """测试 hash_query 函数"""

    def test_hash_query_matches_md5(self):
        """测试哈希与 MD5 前 12 位一致"""
        query = "hello world"
        assert hash_query(query) == hashlib.md5(query.encode()).hexdigest()[:12]

    def test_hash_query_consistency(self):
        """测试哈希一致性"""
        assert hash_query("test query") == hash_query("test query")

    def test_hash_query_different_inputs(self):
        """测试不同输入产生不同哈希"""
        assert hash_query("query 1") != hash_query("query 2")

    def test_hash_query_unicode(self):
        """测试 Unicode 字符哈希"""
        assert len(hash_query("你好世界")) == 12


# ======================================================================
# MessageHistory 类测试
# ======================================================================


class TestMessageHistoryInit:
    """测试 MessageHistory 初始化"""

    def test_initialization(self):
        """测试默认初始化"""
        gateway = make_gateway()
        history = MessageHistory(gateway)
        assert history.messages == []
        assert history.gateway is gateway
        assert history.relevant_ids_by_query == {}
        assert not history.has_messages()


class TestMessageHistoryGenerateSummary:
    """测试 generate_summary 方法"""

    @pytest.mark.asyncio
    async def test_generate_summary_success(self):
        """测试成功生成摘要"""
        gateway = make_gateway(summary="  Apple revenue of $94.9B.  ")
        history = MessageHistory(gateway)

        summary = await history.generate_summary(
            query="What was Apple's revenue?",
            answer="Apple reported revenue of $94.9B.",
        )

        assert summary == "Apple revenue of $94.9B."
        gateway.invoke.assert_called_once()

        # 验证调用参数
        call_args = gateway.invoke.call_args
        prompt = call_args[0][0][-1].content
        assert "Query: What was Apple's revenue?" in prompt
        assert call_args[1]["fast"] is True

    @pytest.mark.asyncio
    async def test_generate_summary_truncates_long_answer(self):
        """测试长答案被截断到 1500 字符"""
        gateway = make_gateway()
        history = MessageHistory(gateway)
        long_answer = "A" * 2000

        await history.generate_summary(query="Test", answer=long_answer)

        prompt = gateway.invoke.call_args[0][0][-1].content
        assert "A" * 1500 in prompt
        assert "A" * 1501 not in prompt

    @pytest.mark.asyncio
    async def test_generate_summary_on_exception(self):
        """测试异常时的回退行为"""
        gateway = make_gateway()
        gateway.invoke.side_effect = Exception("LLM error")
        history = MessageHistory(gateway)

        summary = await history.generate_summary(
            query="What is the capital of France?",
            answer="The capital of France is Paris.",
        )

        assert summary == "Answer to: What is the capital of France?"

    @pytest.mark.asyncio
    async def test_generate_summary_fallback_truncates_query(self):
        """测试回退摘要截断 query 到 100 字符"""
        gateway = make_gateway()
        gateway.invoke.side_effect = Exception("LLM error")
        history = MessageHistory(gateway)

        summary = await history.generate_summary(query="Q" * 300, answer="A")
        assert summary == "Answer to: " + "Q" * 100

    @pytest.mark.asyncio
    async def test_generate_summary_empty_response(self):
        """测试空摘要时使用回退"""
        history = MessageHistory(make_gateway(summary="   "))
        summary = await history.generate_summary(query="Hi", answer="Hello")
        assert summary == "Answer to: Hi"

    @pytest.mark.asyncio
    async def test_generate_summary_propagates_cancellation(self):
        """测试取消不会被吞掉"""
        gateway = make_gateway()
        gateway.invoke.side_effect = RunCancelled("cancelled")
        history = MessageHistory(gateway)

        with pytest.raises(RunCancelled):
            await history.generate_summary(query="Hi", answer="Hello")


class TestMessageHistoryAddMessage:
    """测试 add_message 方法"""

    @pytest.mark.asyncio
    async def test_add_message_success(self):
        """测试成功添加消息"""
        history = MessageHistory(make_gateway(summary="Test summary"))

        message = await history.add_message(query="Test query", answer="Test answer")

        assert len(history.messages) == 1
        assert message is history.messages[0]
        assert message.id == 0
        assert message.query == "Test query"
        assert message.answer == "Test answer"
        assert message.summary == "Test summary"

    @pytest.mark.asyncio
    async def test_add_multiple_messages(self):
        """测试添加多条消息，ID 单调递增"""
        history = MessageHistory(make_gateway())

        await history.add_message(query="Query 1", answer="Answer 1")
        await history.add_message(query="Query 2", answer="Answer 2")
        await history.add_message(query="Query 3", answer="Answer 3")

        assert [m.id for m in history.messages] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_add_message_keeps_cache(self):
        """测试添加消息不会清除相关性缓存"""
        history = MessageHistory(make_gateway())
        cache_key = hash_query("test query")
        history.relevant_ids_by_query[cache_key] = []

        await history.add_message(query="New query", answer="New answer")

        assert history.relevant_ids_by_query == {cache_key: []}

    @pytest.mark.asyncio
    async def test_add_message_cancelled_leaves_history_unchanged(self):
        """测试取消时不追加消息"""
        gateway = make_gateway()
        gateway.invoke.side_effect = RunCancelled("cancelled")
        history = MessageHistory(gateway)

        with pytest.raises(RunCancelled):
            await history.add_message(query="Q", answer="A")
        assert history.messages == []


class TestMessageHistorySelectRelevantMessages:
    """测试 select_relevant_messages 方法"""

    @pytest.mark.asyncio
    async def test_select_with_empty_history(self):
        """测试空历史记录时返回空列表且不调用 LLM"""
        gateway = make_gateway()
        history = MessageHistory(gateway)

        selected = await history.select_relevant_messages("Current query")

        assert selected == []
        gateway.invoke_structured.assert_not_called()

    @pytest.mark.asyncio
    async def test_select_with_cache_hit(self):
        """测试缓存命中时不调用 LLM"""
        gateway = make_gateway()
        history = seeded_history(gateway, 2)
        history.relevant_ids_by_query[hash_query("test query")] = [1]

        selected = await history.select_relevant_messages("test query")

        assert selected == [history.messages[1]]
        gateway.invoke_structured.assert_not_called()

    @pytest.mark.asyncio
    async def test_select_messages_success(self):
        """测试成功选择相关消息"""
        gateway = make_gateway(structured=SelectedMessagesSchema(message_ids=[0, 2]))
        history = seeded_history(gateway, 3)

        selected = await history.select_relevant_messages("Current query")

        assert [m.id for m in selected] == [0, 2]
        call_args = gateway.invoke_structured.call_args
        assert call_args[0][1] is SelectedMessagesSchema
        prompt = call_args[0][0][-1].content
        assert "Current user query: Current query" in prompt
        assert '"summary": "Summary 1"' in prompt

    @pytest.mark.asyncio
    async def test_select_messages_accepts_dict(self):
        """测试结构化输出为 dict 时也能解析"""
        history = seeded_history(make_gateway(structured={"message_ids": [1]}), 2)
        selected = await history.select_relevant_messages("q")
        assert [m.id for m in selected] == [1]

    @pytest.mark.asyncio
    async def test_select_messages_idempotent_single_call(self):
        """测试相同 query 两次调用结果一致且只调用一次 LLM"""
        gateway = make_gateway(structured=SelectedMessagesSchema(message_ids=[0]))
        history = seeded_history(gateway, 1)

        selected1 = await history.select_relevant_messages("test query")
        selected2 = await history.select_relevant_messages("test query")

        assert selected1 == selected2
        gateway.invoke_structured.assert_called_once()

    @pytest.mark.asyncio
    async def test_select_messages_with_invalid_ids(self):
        """测试无效 ID 被丢弃"""
        gateway = make_gateway(structured={"message_ids": [0, 5, -1, 1, 0, True]})
        history = seeded_history(gateway, 2)

        selected = await history.select_relevant_messages("test query")

        assert [m.id for m in selected] == [0, 1]
        assert history.relevant_ids_by_query[hash_query("test query")] == [0, 1]

    @pytest.mark.asyncio
    async def test_select_messages_malformed_response(self):
        """测试格式错误的响应返回空列表"""
        history = seeded_history(make_gateway(structured={"invalid_field": [0]}), 1)
        assert await history.select_relevant_messages("q") == []

    @pytest.mark.asyncio
    async def test_select_messages_failure_not_cached(self):
        """测试失败时返回空列表且不缓存"""
        gateway = make_gateway()
        gateway.invoke_structured.side_effect = Exception("LLM error")
        history = seeded_history(gateway, 1)

        assert await history.select_relevant_messages("q") == []
        assert history.relevant_ids_by_query == {}

        # 恢复后重新调用 LLM
        gateway.invoke_structured.side_effect = None
        gateway.invoke_structured.return_value = SelectedMessagesSchema(message_ids=[0])
        selected = await history.select_relevant_messages("q")
        assert [m.id for m in selected] == [0]
        assert gateway.invoke_structured.call_count == 2

    @pytest.mark.asyncio
    async def test_select_and_add_are_serialized(self):
        """测试 add_message 与 select_relevant_messages 互斥执行"""
        gateway = make_gateway()
        history = seeded_history(gateway, 1)
        release = asyncio.Event()
        order: list[str] = []

        async def slow_select(*args, **kwargs):
            order.append("select:start")
            await release.wait()
            order.append("select:end")
            return SelectedMessagesSchema(message_ids=[0])

        async def summary(*args, **kwargs):
            order.append("add")
            return GatewayResponse(text="s")

        gateway.invoke_structured.side_effect = slow_select
        gateway.invoke.side_effect = summary

        select_task = asyncio.create_task(history.select_relevant_messages("q"))
        await asyncio.sleep(0)
        add_task = asyncio.create_task(history.add_message("q2", "a2"))
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(select_task, add_task)

        assert order == ["select:start", "select:end", "add"]


class TestMessageHistoryFormatting:
    """测试格式化与访问方法"""

    def test_format_for_planning(self):
        """测试格式化为规划上下文"""
        history = seeded_history(make_gateway(), 2)
        text = history.format_for_planning(history.messages)
        assert text == "User: Query 0\nAssistant: Summary 0\n\nUser: Query 1\nAssistant: Summary 1"

    def test_format_for_planning_empty(self):
        """测试空列表返回空字符串"""
        history = MessageHistory(make_gateway())
        assert history.format_for_planning([]) == ""

    def test_get_messages_returns_copy(self):
        """测试 get_messages 返回副本"""
        history = seeded_history(make_gateway(), 1)
        messages = history.get_messages()
        messages.clear()
        assert len(history.messages) == 1

    def test_get_user_messages(self):
        """测试获取用户查询列表"""
        history = seeded_history(make_gateway(), 2)
        assert history.get_user_messages() == ["Query 0", "Query 1"]

    def test_clear(self):
        """测试清除历史与缓存"""
        history = seeded_history(make_gateway(), 2)
        history.relevant_ids_by_query["k"] = [0]

        history.clear()

        assert history.messages == []
        assert history.relevant_ids_by_query == {}
        assert not history.has_messages()
