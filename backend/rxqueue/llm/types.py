"""
LLM 层的标准响应结构。

所有 LLMService 实现的 complete() 都返回这个对象。
业务层（soap_notes.py）只认识这个格式，不知道背后用的是哪家 LLM。
"""

from dataclasses import dataclass


@dataclass
class LLMResponse:
    content: str                    # 生成的文本（SOAP note 的 JSON）
    model: str                      # 实际使用的模型名，写入 SoapNote.llm_model
    prompt_tokens: int = None
    completion_tokens: int = None
