"""In-page instrumentation.

OBSERVER_SCRIPT is registered with Page.addScriptToEvaluateOnNewDocument so
its PerformanceObservers exist before the page's first paint. It publishes
its state on window.__perfState; SNAPSHOT_EXPRESSION reads that state back
together with navigation and resource timing in one Runtime.evaluate call.
"""

STATE_GLOBAL = "__perfState"

OBSERVER_SCRIPT = """(() => {
  const state = {
    fcp: 0,
    lcp: 0,
    lcpSize: 0,
    lcpSelector: null,
    lcpText: null,
    cls: 0,
    layoutShifts: [],
    longTasks: [],
  };

  function selector(el) {
    if (!el || !el.tagName) return null;
    const parts = [];
    let node = el;
    let depth = 0;
    while (node && node.nodeType === 1 && depth < 5) {
      let part = node.tagName.toLowerCase();
      if (node.id) {
        parts.unshift(part + '#' + node.id);
        break;
      }
      const classList = Array.from(node.classList || []).slice(0, 2);
      if (classList.length) {
        part += '.' + classList.join('.');
      }
      parts.unshift(part);
      node = node.parentElement;
      depth += 1;
    }
    return parts.join(' > ');
  }

  function observe(type, onEntry) {
    try {
      new PerformanceObserver((list) => {
        for (const entry of list.getEntries()) onEntry(entry);
      }).observe({ type, buffered: true });
    } catch (e) {}
  }

  observe('paint', (entry) => {
    if (entry.name === 'first-contentful-paint') state.fcp = entry.startTime;
  });

  observe('largest-contentful-paint', (entry) => {
    state.lcp = entry.startTime;
    state.lcpSize = entry.size || 0;
    state.lcpSelector = selector(entry.element || null);
    state.lcpText = null;
    if (entry.element && typeof entry.element.textContent === 'string') {
      state.lcpText = entry.element.textContent.trim().slice(0, 120);
    }
  });

  observe('layout-shift', (entry) => {
    state.layoutShifts.push({ value: entry.value, hadRecentInput: !!entry.hadRecentInput });
    if (!entry.hadRecentInput) state.cls += entry.value;
  });

  observe('longtask', (entry) => {
    state.longTasks.push({ start: entry.startTime, duration: entry.duration });
  });

  window.__STATE_GLOBAL__ = state;
})();""".replace("__STATE_GLOBAL__", STATE_GLOBAL)

SNAPSHOT_EXPRESSION = """(() => {
  const perfState = window.__STATE_GLOBAL__ || null;
  const nav = performance.getEntriesByType('navigation')[0];
  const resources = performance.getEntriesByType('resource').map((entry) => ({
    name: entry.name,
    initiatorType: entry.initiatorType,
    transferSize: entry.transferSize || 0,
    encodedBodySize: entry.encodedBodySize || 0,
    duration: entry.duration,
    startTime: entry.startTime,
    renderBlockingStatus: entry.renderBlockingStatus || null,
  }));
  return {
    perfState,
    nav: nav ? {
      responseEnd: nav.responseEnd,
      domContentLoaded: nav.domContentLoadedEventEnd,
      load: nav.loadEventEnd,
    } : null,
    resources,
  };
})()""".replace("__STATE_GLOBAL__", STATE_GLOBAL)
