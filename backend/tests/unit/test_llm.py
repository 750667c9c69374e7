"""
Unit tests for the LLM layer.

SDK 客户端全部 mock，不会真的调 API。
"""
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from rxqueue.llm import get_llm_service
from rxqueue.llm.services import ClaudeService, OpenAIService


class TestGetLlmService:

    def test_anthropic_reads_settings(self, settings):
        settings.LLM_PROVIDER = 'anthropic'
        settings.ANTHROPIC_API_KEY = 'sk-ant-test'
        settings.ANTHROPIC_MODEL = 'claude-test'
        settings.SOAP_MAX_TOKENS = 1500

        service = get_llm_service()

        assert isinstance(service, ClaudeService)
        assert service.api_key == 'sk-ant-test'
        assert service.model == 'claude-test'
        assert service.max_tokens == 1500

    def test_openai(self, settings):
        settings.LLM_PROVIDER = 'openai'
        assert isinstance(get_llm_service(), OpenAIService)

    def test_unknown_provider(self, settings):
        settings.LLM_PROVIDER = 'mystery'

        with pytest.raises(ValueError, match="Unknown LLM_PROVIDER: 'mystery'"):
            get_llm_service()


class TestClaudeService:

    def test_missing_api_key(self):
        with patch('anthropic.Anthropic') as mock_client_cls:
            with pytest.raises(ValueError, match='ANTHROPIC_API_KEY'):
                ClaudeService(api_key='', model='claude-test').complete('system', 'user')

        mock_client_cls.assert_not_called()

    def test_complete(self):
        fake = SimpleNamespace(
            content=[SimpleNamespace(text='{"subjective": "..."}')],
            usage=SimpleNamespace(input_tokens=100, output_tokens=50),
        )

        with patch('anthropic.Anthropic') as mock_client_cls:
            mock_client_cls.return_value.messages.create.return_value = fake
            response = ClaudeService(api_key='sk-ant-test', model='claude-test').complete(
                'system prompt', 'user prompt',
            )

        assert response.content == '{"subjective": "..."}'
        assert response.model == 'claude-test'
        assert response.prompt_tokens == 100
        assert response.completion_tokens == 50
        kwargs = mock_client_cls.return_value.messages.create.call_args.kwargs
        assert kwargs['system'] == 'system prompt'
        assert kwargs['max_tokens'] == 2000
        assert kwargs['messages'] == [{'role': 'user', 'content': 'user prompt'}]


class TestOpenAIService:

    def test_complete_requests_json(self):
        fake = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{}'))],
            usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3),
        )

        with patch('openai.OpenAI') as mock_client_cls:
            mock_client_cls.return_value.chat.completions.create.return_value = fake
            response = OpenAIService(api_key='sk-test', model='gpt-4o-mini').complete('system', 'user')

        assert response.model == 'gpt-4o-mini'
        assert response.prompt_tokens == 7
        kwargs = mock_client_cls.return_value.chat.completions.create.call_args.kwargs
        assert kwargs['response_format'] == {'type': 'json_object'}
        assert kwargs['messages'][0] == {'role': 'system', 'content': 'system'}
