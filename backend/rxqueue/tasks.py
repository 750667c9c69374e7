import logging
from celery import shared_task

logger = logging.getLogger(__name__)


class SoapGenerationError(Exception):
    """LLM 调用或解析失败，交给 Celery 重试。"""


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # 初始重试延迟（秒），指数退避会乘以 2^retry_count
    acks_late=True,           # 任务执行完才 ack，防止 worker 崩溃时任务丢失
    reject_on_worker_lost=True,
)
def generate_soap_note(self, patient_id: str, invoice_id: str = None):
    """
    paid invoice 入队后异步生成 SOAP note。

    重试策略：
      - 已有有效 note / 测试患者 / 没有 intake 数据 → 直接结束，不重试
      - LLM 失败最多重试 3 次，指数退避：10s → 20s → 40s
      - 超出次数后放弃，provider 在队列里会看到 MISSING，可以手动生成
    """
    from rxqueue.models import Invoice, Patient
    from rxqueue.soap_notes import ensure_soap_note_exists

    logger.info("[Celery][generate_soap_note] 开始处理 patient_id=%s (attempt %d/%d)",
                patient_id, self.request.retries + 1, self.max_retries + 1)

    try:
        patient = Patient.objects.get(id=patient_id)
    except Patient.DoesNotExist:
        logger.error("[Celery] Patient %s 不存在，跳过", patient_id)
        return None  # 不重试，直接结束

    invoice = Invoice.objects.filter(id=invoice_id).first() if invoice_id else None
    result = ensure_soap_note_exists(patient, invoice)

    if result.action in ('existing', 'generated'):
        logger.info("[Celery] patient_id=%s SOAP note %s (note=%s)",
                    patient_id, result.action, result.soap_note.id)
        return str(result.soap_note.id)

    if result.action == 'no_data':
        logger.info("[Celery] patient_id=%s 无需生成: %s", patient_id, result.error)
        return None

    logger.warning(
        "[Celery] patient_id=%s 生成失败 (attempt %d): %s",
        patient_id, self.request.retries + 1, result.error
    )

    if self.request.retries < self.max_retries:
        # 指数退避：countdown = 10 * 2^retries → 10s, 20s, 40s
        countdown = self.default_retry_delay * (2 ** self.request.retries)
        logger.info(
            "[Celery] 将在 %ds 后重试 (第 %d 次)...",
            countdown, self.request.retries + 1
        )
        raise self.retry(exc=SoapGenerationError(result.error), countdown=countdown)

    logger.error("[Celery] patient_id=%s 已达最大重试次数，放弃生成 SOAP note", patient_id)
    return None
