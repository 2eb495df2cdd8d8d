"""Pain Radar stage agents.

Three tool-augmented agents, run in sequence by the PipelineOrchestrator:
  Extractor: documents -> pain points   (analyze_pain_severity per document)
  Generator: pain points -> ideas       (market size + competition per pain point)
  Scorer:    ideas -> score breakdowns  (all three tools per idea)

Each agent gathers evidence with its tools first, then emits one JSON
synthesis. The extraction cascade recovers data when that synthesis is
missing or malformed.
"""
