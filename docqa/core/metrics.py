"""
Metrics configuration for monitoring and observability.
"""
from prometheus_client import Counter, Histogram, Gauge
import structlog

logger = structlog.get_logger(__name__)

# RAG metrics
RAG_DOCUMENTS_INDEXED = Counter('docqa_rag_documents_indexed_total', 'Total documents indexed', ['status'])
RAG_CHUNKS_INDEXED = Counter('docqa_rag_chunks_indexed_total', 'Total chunks indexed')
RAG_SEARCHES = Counter('docqa_rag_searches_total', 'Total vector searches', ['restricted'])
RAG_SEARCH_TIME = Histogram('docqa_rag_search_duration_seconds', 'Vector search time')
RAG_INDEXED_DOCUMENTS = Gauge('docqa_rag_indexed_documents', 'Documents currently indexed')

# Agent metrics
AGENT_RUNS = Counter('docqa_agent_runs_total', 'Total agent loop runs', ['mode', 'outcome'])
AGENT_ITERATIONS = Histogram(
    'docqa_agent_iterations', 'Model calls per agent loop run',
    buckets=(1, 2, 3, 4, 5, 6, 8, 10, 15, 20)
)

# Tool metrics
TOOL_EXECUTIONS = Counter('docqa_tool_executions_total', 'Total tool executions', ['tool', 'status'])
TOOL_EXECUTION_TIME = Histogram('docqa_tool_execution_duration_seconds', 'Tool execution time', ['tool'])
SECURITY_DENIALS = Counter('docqa_workspace_security_denials_total', 'Paths rejected by the workspace sandbox')

# AI Model metrics
AI_MODEL_REQUESTS = Counter('docqa_ai_model_requests_total', 'Total AI model requests', ['model', 'status'])
AI_MODEL_RESPONSE_TIME = Histogram('docqa_ai_model_response_duration_seconds', 'AI model response time', ['model'])
AI_MODEL_TOKENS_USED = Counter('docqa_ai_model_tokens_total', 'Total tokens used', ['model'])


def setup_metrics(indexed_documents: int = 0):
    """Initialize gauges that need a starting value."""
    logger.info("Setting up Prometheus metrics", indexed_documents=indexed_documents)
    RAG_INDEXED_DOCUMENTS.set(indexed_documents)
