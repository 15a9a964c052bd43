"""Mention & Citation Analysis.

Pure functions over provider answers, no I/O:
  1. Citation Extractor (structured, markdown, provider fallbacks)
  2. Brand / competitor mention analyzer
  3. Analytics Aggregator (session increments for cumulative analytics)

Input:  stored per-provider sub-results
Output: BrandMentionAnalysis, AnalyticsRecord, CompetitorAnalyticsRecord
"""
