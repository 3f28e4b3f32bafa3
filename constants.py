AUDIT_REPORT_TEMPLATE = """
<div>
  <p style="text-align: center; margin-bottom: 20px;"><strong>INDEPENDENT AUDITOR’S REPORT</strong></p>

  <p style="margin-bottom: 5px;">To,</p>
  <p style="margin-bottom: 5px;">The Shareholders,</p>
  <p style="margin-bottom: 5px;">[CLIENT_NAME_HEADER]</p>
  <p style="margin-bottom: 20px;">[Address]</p>

  <h3>Report on the Audit of the Financial Statements</h3>

  <h4>Opinion</h4>
  <p style="margin-bottom: 10px;">We have audited the accompanying financial statements of [Name of Entity] (“the Company”), which comprise the Statement of Financial Position as at [FY_PERIOD_END_OPINION], the Statement of Profit or Loss and Other Comprehensive Income, Statement of Changes in Equity, Statement of Cash Flows for the year then ended, and notes to the financial statements, including a summary of significant accounting policies prepared in accordance with [APPLICABLE_FRF].</p>
  <p style="margin-bottom: 20px;">In our opinion, the accompanying financial statements give a true and fair view, in all material respects, of the financial position of the Company as at [FY_PERIOD_END_OPINION], and of its financial performance and cash flows for the year then ended in accordance with [APPLICABLE_FRF].</p>

  <h4>Basis for Opinion</h4>
  <p style="margin-bottom: 20px;">We conducted our audit in accordance with Nepal Standards on Auditing (NSA). Our responsibilities under those standards are further described in the Auditor’s Responsibilities for the Audit of the Financial Statements section of our report. We are independent of the Company in accordance with the ethical requirements of the ICAN Code of Ethics and we have fulfilled our other ethical responsibilities. We believe that the audit evidence we have obtained is sufficient and appropriate to provide a basis for our opinion.</p>

  <h4>Key Audit Matters</h4>
  <p style="margin-bottom: 10px;">Key audit matters are those matters that, in our professional judgment, were of most significance in our audit of the financial statements of the current period and include most significant assessed risks of material misstatement (whether or not due to fraud) identified including those which has greatest effect on overall audit strategy, allocation of resources in the audit and directing effort of the engagement team. We summarize below key audit matters, in decreasing order of audit significance, in arriving at our audit opinion above, together with our key audit procedures to address those matters and, as required for public interest entities, our results from those procedures. These matters were addressed in the context of our audit of the financial statements as whole, and in forming our opinion thereon, and we did not provide a separate opinion on these matters.</p>
  <div style="margin-left: 20px; margin-bottom: 20px;">[KEY_AUDIT_MATTERS]</div>

  [OTHER_INFORMATION_SECTION]

  <h4>Management’s Responsibility for the Financial Statements</h4>
  <p style="margin-bottom: 20px;">Management is responsible for the preparation and fair presentation of these financial statements in accordance with [APPLICABLE_FRF] and the Companies Act, 2063, and for such internal control as management determines is necessary to enable the preparation of financial statements that are free from material misstatement, whether due to fraud or error.</p>

  <h4>Auditor’s Responsibilities for the Audit of the Financial Statements</h4>
  <p style="margin-bottom: 10px;">Our objectives are to obtain reasonable assurance about whether the financial statements as a whole are free from material misstatement, whether due to fraud or error, and to issue an auditor’s report that includes our opinion. Reasonable assurance is a high level of assurance but is not a guarantee that an audit conducted in accordance with NSA will always detect a material misstatement when it exists.</p>
  <div style="margin-left: 20px; margin-bottom: 20px;">[NSA_RESPONSIBILITIES]</div>

  <h3>Report on Other Legal and Regulatory Requirements</h3>
  <ol style="margin-left: 20px; margin-bottom: 20px;">
    <li style="margin-bottom: 5px;">We have obtained all the information and explanations required for the audit.</li>
    <li style="margin-bottom: 5px;">Books of accounts are maintained as required by law.</li>
    <li style="margin-bottom: 5px;">The financial statements comply with [APPLICABLE_FRF] and the Companies Act, 2063.</li>
  </ol>

  <p style="margin-top: 40px; margin-bottom: 5px;"><strong>Signature:</strong></p>
  <div style="height: 60px;"></div>
  <p style="margin-bottom: 5px;">----------------------------------</p>
  <p style="margin-bottom: 2px;"><strong>[Name of Engagement Partner]</strong></p>
  <p style="margin-bottom: 2px;"><strong>[Designation]</strong></p>
  <p style="margin-bottom: 15px;"><strong>[Name of Audit Firm]</strong></p>

  <p style="margin-bottom: 2px;">Date: [Date]</p>
  <p style="margin-bottom: 15px;">Place: [Place]</p>

  <p style="margin-bottom: 2px;">Firm Registration Number: [Firm Registration Number]</p>
  <p>UDIN: [UDIN]</p>
</div>
"""

# Every token the report template may contain
REPORT_PLACEHOLDERS = (
    '[CLIENT_NAME_HEADER]',
    '[Name of Entity]',
    '[Address]',
    '[FY_PERIOD_END_OPINION]',
    '[APPLICABLE_FRF]',
    '[KEY_AUDIT_MATTERS]',
    '[OTHER_INFORMATION_SECTION]',
    '[NSA_RESPONSIBILITIES]',
    '[Name of Engagement Partner]',
    '[Designation]',
    '[Name of Audit Firm]',
    '[Date]',
    '[Place]',
    '[Firm Registration Number]',
    '[UDIN]',
)

NO_KEY_AUDIT_MATTERS = 'No key audit matters to report.'

OTHER_INFORMATION_HEADING = 'Information other than the Financial Statements and Auditors’ Report Thereon'

OTHER_INFORMATION_SECTION = f"""
    <h4>{OTHER_INFORMATION_HEADING}</h4>
    <p style="margin-bottom: 10px;">The Management is responsible for the other information. The other information comprises the information included in the annual report, but does not include the financial statements and our auditor’s report thereon.</p>
    <p style="margin-bottom: 10px;">Our opinion on the financial statements does not cover the other information and we do not express any form of assurance conclusion thereon.</p>
    <p style="margin-bottom: 20px;">In connection with our audit of the financial statements, our responsibility is to read the other information and, in doing so, consider whether the other information is materially inconsistent with the financial statements or our knowledge obtained in the audit or otherwise appears to be materially misstated. If, based on the work, we have performed, we conclude that there is a material misstatement of this other information, we are required to report that fact. We have nothing to report in this regard.</p>
"""

NSA_RESPONSIBILITIES = (
    'Our responsibilities under those standards include: identifying and assessing the risks of material '
    'misstatement of the financial statements, whether due to fraud or error, design and perform audit procedures '
    'responsive to those risks, and obtain audit evidence that is sufficient and appropriate to provide a basis for '
    'our opinion. The risk of not detecting a material misstatement resulting from fraud is higher than for one '
    'resulting from error, as fraud may involve collusion, forgery, intentional omissions, misrepresentations, or '
    'the override of internal control. Obtain an understanding of internal control relevant to the audit in order '
    'to design audit procedures that are appropriate in the circumstances, but not for the purpose of expressing an '
    'opinion on the effectiveness of the Company’s internal control. Evaluate the appropriateness of accounting '
    'policies used and the reasonableness of accounting estimates and related disclosures made by management. '
    'Conclude on the appropriateness of management’s use of the going concern basis of accounting and, based on '
    'the audit evidence obtained, whether a material uncertainty exists related to events or conditions that may '
    'cast significant doubt on the Company’s ability to continue as a going concern. If we conclude that a material '
    'uncertainty exists, we are required to draw attention in our auditor’s report to the related disclosures in '
    'the financial statements or, if such disclosures are inadequate, to modify our opinion. Our conclusions are '
    'based on the audit evidence obtained up to the date of our auditor’s report. However, future events or '
    'conditions may cause the Company to cease to continue as a going concern. Evaluate the overall presentation, '
    'structure and content of the financial statements, including the disclosures, and whether the financial '
    'statements represent the underlying transactions and events in a manner that achieves fair presentation.'
)

WORD_DOCUMENT_ENVELOPE = """
<html xmlns:o='urn:schemas-microsoft-com:office:office'
      xmlns:w='urn:schemas-microsoft-com:office:word'
      xmlns='http://www.w3.org/TR/REC-html40'>
<head>
    <meta charset='utf-8'>
    <meta name=ProgId content=Word.Document>
    <title>{title}</title>
    <!--[if gte mso 9]>
    <xml>
        <w:WordDocument>
            <w:View>Print</w:View>
            <w:Zoom>100</w:Zoom>
            <w:DoNotOptimizeForBrowser/>
        </w:WordDocument>
    </xml>
    <![endif]-->
    <style>
        body {{ font-family: Arial, sans-serif; font-size: 11pt; line-height: 1.5; margin: 20px; }}
        p {{ margin-bottom: 10px; }}
        strong {{ font-weight: bold; }}
        h2, h3, h4 {{ font-weight: bold; }}
        h3 {{ margin-top: 20px; margin-bottom: 10px; }}
        h4 {{ margin-top: 15px; margin-bottom: 5px; }}
    </style>
</head>
<body>{content}</body></html>"""

REPORT_MIME_TYPE = 'application/msword'

ENGAGEMENT_LETTER_TEMPLATE = """Date: {today}

To the Board of Directors of {client_name},
{client_address}

Dear Sirs,

You have requested that we audit the financial statements of {client_name}, which comprise the statement of financial position as at {fy_period_end}, and the statement of profit or loss, statement of changes in equity and statement of cash flows for the year then ended, and notes to the financial statements, including a summary of significant accounting policies. We are pleased to confirm our acceptance and our understanding of this audit engagement by means of this letter.

Our audit will be conducted with the objective of our expressing an opinion on the financial statements, prepared in accordance with {frf}.

We will conduct our audit in accordance with Nepal Standards on Auditing (NSA 210). Management is responsible for the preparation and fair presentation of the financial statements, for such internal control as management determines is necessary, and for providing us with access to all information relevant to the preparation of the financial statements.

Please sign and return the attached copy of this letter to indicate your acknowledgement of, and agreement with, the arrangements for our audit of the financial statements including our respective responsibilities.

Yours faithfully,

{partner_name}
"""
