"""
Anthropic / OpenAI 两个实现。

两家都要求只返回 JSON：Claude 靠 system prompt 约束，
OpenAI 额外开 response_format=json_object。
"""

from .base import BaseLLMService
from .types import LLMResponse


class ClaudeService(BaseLLMService):

    provider_name = "anthropic"
    api_key_setting = "ANTHROPIC_API_KEY"

    def _request(self, system_prompt, user_prompt):
        import anthropic

        client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
        message = client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )

        # content 是 block 列表，只取 text block
        text = "".join(block.text for block in message.content if getattr(block, "text", None))
        usage = getattr(message, "usage", None)
        return LLMResponse(
            content=text,
            model=self.model,
            prompt_tokens=getattr(usage, "input_tokens", None),
            completion_tokens=getattr(usage, "output_tokens", None),
        )


class OpenAIService(BaseLLMService):

    provider_name = "openai"
    api_key_setting = "OPENAI_API_KEY"

    def _request(self, system_prompt, user_prompt):
        import openai

        client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)
        completion = client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )

        usage = getattr(completion, "usage", None)
        return LLMResponse(
            content=completion.choices[0].message.content or "",
            model=self.model,
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
        )
